"""Management script for database setup and other tasks"""

import getpass
import os

from flask.cli import FlaskGroup

from lessonhub import create_app
from lessonhub.extensions import db
from lessonhub.models import Lesson, User, UserRole
from lessonhub.utils.validators import normalize_email, validate_email, validate_password

cli = FlaskGroup(create_app=lambda: create_app(os.getenv("FLASK_CONFIG", "development")))

SAMPLE_LESSONS = [
    {
        "title": "Getting Started with Python",
        "description": "Variables, types and the interactive interpreter.",
        "content": "Python is an interpreted language...",
        "duration": 25,
        "category": "programming",
        "tags": ["python", "beginner"],
        "is_premium": False,
        "author": "LessonHub Team",
        "order": 1,
    },
    {
        "title": "Functions and Modules",
        "description": "Structuring code with functions and modules.",
        "content": "A function is defined with def...",
        "duration": 40,
        "category": "programming",
        "tags": ["python", "functions"],
        "is_premium": False,
        "author": "LessonHub Team",
        "order": 2,
    },
    {
        "title": "Async IO in Depth",
        "description": "Event loops, tasks and structured concurrency.",
        "content": "asyncio schedules coroutines on an event loop...",
        "duration": 90,
        "category": "programming",
        "tags": ["python", "async", "advanced"],
        "is_premium": True,
        "author": "LessonHub Team",
        "order": 3,
    },
]


@cli.command("init-db")
def init_db():
    """Create all database tables"""
    db.create_all()
    print("✅ Database initialized successfully!")


@cli.command("seed-lessons")
def seed_lessons():
    """Seed the catalog with sample lessons"""
    created = 0
    for data in SAMPLE_LESSONS:
        if Lesson.query.filter_by(title=data["title"]).first():
            continue
        db.session.add(Lesson(**data))
        created += 1

    db.session.commit()
    print(f"✅ {created} sample lessons created.")


@cli.command("create-admin")
def create_admin():
    """Create an admin user"""
    email = normalize_email(input("Enter admin email: "))
    first_name = input("Enter first name: ").strip()
    last_name = input("Enter last name: ").strip()
    password = getpass.getpass("Enter password: ")

    if not validate_email(email) or not first_name or not last_name:
        print("❌ A valid email and both names are required!")
        return

    ok, message = validate_password(password)
    if not ok:
        print(f"❌ {message}")
        return

    if User.query.filter_by(email=email).first():
        print(f"❌ User with email '{email}' already exists!")
        return

    user = User(email=email, first_name=first_name, last_name=last_name, role=UserRole.ADMIN)
    user.set_password(password)
    db.session.add(user)
    db.session.commit()

    print(f"✅ Admin user created successfully: {email}")


if __name__ == "__main__":
    cli()
