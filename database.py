import json
import logging
from datetime import datetime

import mysql.connector
from mysql.connector import pooling

from config import DatabaseConfig
from models import ExamStatus

logger = logging.getLogger(__name__)

DB_CONFIG = DatabaseConfig.from_env()

# Create connection pool
connection_pool = None


def init_db():
    """Initialize database and create tables"""
    global connection_pool

    # First connect without database to create it if needed
    try:
        conn = mysql.connector.connect(
            host=DB_CONFIG.host,
            user=DB_CONFIG.user,
            password=DB_CONFIG.password
        )
        cursor = conn.cursor()
        cursor.execute(f"CREATE DATABASE IF NOT EXISTS {DB_CONFIG.database} CHARACTER SET utf8mb4 COLLATE utf8mb4_unicode_ci")
        conn.close()
    except mysql.connector.Error as e:
        logger.error(f"Error creating database: {e}")

    connection_pool = pooling.MySQLConnectionPool(**DB_CONFIG.pool_kwargs())
    create_tables()


def get_connection():
    """Get connection from pool"""
    global connection_pool
    if connection_pool is None:
        init_db()
    return connection_pool.get_connection()


def create_tables():
    """Create all necessary tables"""
    conn = get_connection()
    cursor = conn.cursor()

    # Exam attempts
    cursor.execute('''
        CREATE TABLE IF NOT EXISTS exams (
            id INT AUTO_INCREMENT PRIMARY KEY,
            user_id VARCHAR(100) NOT NULL,
            exam_date TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
            completed BOOLEAN DEFAULT FALSE,
            listening_score FLOAT DEFAULT 0,
            reading_score FLOAT DEFAULT 0,
            writing_score FLOAT DEFAULT 0,
            speaking_score FLOAT DEFAULT 0,
            overall_band FLOAT NULL,
            status VARCHAR(20) NULL,
            result_json TEXT NULL
        )
    ''')

    # Answers submitted during an attempt
    cursor.execute('''
        CREATE TABLE IF NOT EXISTS user_responses (
            id INT AUTO_INCREMENT PRIMARY KEY,
            user_id VARCHAR(100) NOT NULL,
            exam_id INT NOT NULL,
            question_id INT NOT NULL,
            user_answer TEXT NOT NULL,
            module VARCHAR(20) NOT NULL,
            answered_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
        )
    ''')

    # Question bank
    cursor.execute('''
        CREATE TABLE IF NOT EXISTS questions (
            id INT AUTO_INCREMENT PRIMARY KEY,
            module VARCHAR(20) NOT NULL,
            question_text TEXT NOT NULL,
            options TEXT NULL,
            correct_answer VARCHAR(500) NULL,
            band_level FLOAT DEFAULT 6,
            task_type VARCHAR(10) NULL,
            created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
        )
    ''')

    conn.commit()
    cursor.close()
    conn.close()


# Exam operations
def create_exam(user_id):
    """Create a new attempt; returns its id, or None if the insert failed"""
    try:
        conn = get_connection()
        cursor = conn.cursor()
        cursor.execute(
            "INSERT INTO exams (user_id, exam_date, completed) VALUES (%s, %s, %s)",
            (user_id, datetime.now(), False)
        )
        conn.commit()
        exam_id = cursor.lastrowid
        cursor.close()
        conn.close()
        return exam_id
    except mysql.connector.Error as e:
        logger.error(f"Error creating exam: {e}")
        return None


def get_exam(exam_id):
    conn = get_connection()
    cursor = conn.cursor(dictionary=True)
    cursor.execute("SELECT * FROM exams WHERE id = %s", (exam_id,))
    exam = cursor.fetchone()
    cursor.close()
    conn.close()
    return exam


def get_user_exams(user_id):
    conn = get_connection()
    cursor = conn.cursor(dictionary=True)
    cursor.execute('''
        SELECT e.*, COUNT(r.id) AS response_count
        FROM exams e
        LEFT JOIN user_responses r ON r.exam_id = e.id
        WHERE e.user_id = %s
        GROUP BY e.id
        ORDER BY e.exam_date DESC
    ''', (user_id,))
    exams = cursor.fetchall()
    cursor.close()
    conn.close()
    return exams


def complete_exam(exam_id, result):
    """Store an ExamResult on its attempt record; incomplete results stay uncompleted"""
    bands = {module.value: score.overall for module, score in result.scores.items()}

    conn = get_connection()
    cursor = conn.cursor()
    cursor.execute('''
        UPDATE exams
        SET completed = %s, listening_score = %s, reading_score = %s, writing_score = %s,
            speaking_score = %s, overall_band = %s, status = %s, result_json = %s
        WHERE id = %s
    ''', (
        result.status is ExamStatus.COMPLETE,
        bands.get('listening', 0),
        bands.get('reading', 0),
        bands.get('writing', 0),
        bands.get('speaking', 0),
        result.overall_band,
        result.status.value,
        json.dumps(result.model_dump(mode='json'), ensure_ascii=False),
        exam_id
    ))
    conn.commit()
    cursor.close()
    conn.close()


# Answer operations
def save_answer(user_id, exam_id, question_id, user_answer, module):
    """Insert one answer record; returns False if the insert failed"""
    try:
        conn = get_connection()
        cursor = conn.cursor()
        cursor.execute('''
            INSERT INTO user_responses (user_id, exam_id, question_id, user_answer, module, answered_at)
            VALUES (%s, %s, %s, %s, %s, %s)
        ''', (user_id, exam_id, question_id, user_answer, module, datetime.now()))
        conn.commit()
        cursor.close()
        conn.close()
        return True
    except mysql.connector.Error as e:
        logger.error(f"Error saving answer: {e}")
        return False


def get_exam_answers(exam_id, module=None):
    """Answers for an attempt joined with their question, in question order"""
    conn = get_connection()
    cursor = conn.cursor(dictionary=True)
    query = '''
        SELECT r.*, q.question_text, q.correct_answer, q.task_type
        FROM user_responses r
        LEFT JOIN questions q ON q.id = r.question_id
        WHERE r.exam_id = %s
    '''
    params = [exam_id]
    if module:
        query += " AND r.module = %s"
        params.append(module)
    query += " ORDER BY r.question_id, r.answered_at"
    cursor.execute(query, params)
    answers = cursor.fetchall()
    cursor.close()
    conn.close()
    return answers


# Question operations
def get_questions(module, limit=5):
    conn = get_connection()
    cursor = conn.cursor(dictionary=True)
    cursor.execute("SELECT * FROM questions WHERE module = %s ORDER BY id LIMIT %s", (module, limit))
    questions = cursor.fetchall()
    cursor.close()
    conn.close()
    for q in questions:
        q['options'] = json.loads(q['options']) if q.get('options') else []
    return questions


def add_question(module, question_text, correct_answer=None, options=None, band_level=6, task_type=None):
    conn = get_connection()
    cursor = conn.cursor()
    cursor.execute('''
        INSERT INTO questions (module, question_text, options, correct_answer, band_level, task_type)
        VALUES (%s, %s, %s, %s, %s, %s)
    ''', (module, question_text, json.dumps(options) if options else None, correct_answer, band_level, task_type))
    conn.commit()
    question_id = cursor.lastrowid
    cursor.close()
    conn.close()
    return question_id
