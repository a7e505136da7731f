# setup_db.py
import logging
import sys

from db import Base, SessionLocal, engine
from models.attempt import Attempt
from models.curriculum import Challenge, Lesson, Module
from models.game_result import GameResult
from models.lesson_progress import LessonProgress
from models.user import User
from models.user_statistics import UserStatistics

logger = logging.getLogger("setup_db")

SAMPLE_CURRICULUM = [
    {
        "slug": "html-basics",
        "title": "HTML Basics",
        "description": "Learn the fundamentals of HTML",
        "color": "#e34c26",
        "lesson": {
            "slug": "html-first-page",
            "title": "Your First Page",
            "content_md": "# Your First Page\n\nEvery page starts with `<html>`.",
            "starter_code": "<!DOCTYPE html>\n<html>\n</html>",
            "estimated_duration": 15,
        },
        "challenge": {"title": "Add a heading", "difficulty": "easy", "points": 10},
    },
    {
        "slug": "css-styling",
        "title": "CSS Styling",
        "description": "Style pages with selectors and properties",
        "color": "#264de4",
        "lesson": {
            "slug": "css-selectors",
            "title": "Selectors",
            "content_md": "# Selectors\n\nTarget elements by tag, class or id.",
            "starter_code": "h1 {\n}",
            "estimated_duration": 20,
        },
        "challenge": {"title": "Color the heading", "difficulty": "easy", "points": 15},
    },
    {
        "slug": "javascript-fundamentals",
        "title": "JavaScript Fundamentals",
        "description": "Variables, functions and the DOM",
        "color": "#f0db4f",
        "lesson": {
            "slug": "js-variables",
            "title": "Variables",
            "content_md": "# Variables\n\nUse `let` and `const`.",
            "starter_code": "let greeting;",
            "estimated_duration": 30,
        },
        "challenge": {"title": "Declare a constant", "difficulty": "medium", "points": 25},
    },
]


def seed(session):
    for order_index, entry in enumerate(SAMPLE_CURRICULUM, start=1):
        module = Module(
            slug=entry["slug"],
            title=entry["title"],
            description=entry["description"],
            color=entry["color"],
            order_index=order_index,
        )
        session.add(module)
        session.flush()

        lesson = Lesson(module_id=module.id, order_index=1, **entry["lesson"])
        session.add(lesson)
        session.flush()

        session.add(Challenge(lesson_id=lesson.id, **entry["challenge"]))
    session.commit()


if __name__ == "__main__":
    logging.basicConfig(level=logging.INFO, format="%(message)s")
    logger.info("Dropping tables...")
    Base.metadata.drop_all(bind=engine)
    logger.info("Creating tables...")
    Base.metadata.create_all(bind=engine)
    if "--seed" in sys.argv:
        with SessionLocal() as session:
            seed(session)
        logger.info("Seeded %d modules.", len(SAMPLE_CURRICULUM))
    logger.info("Done.")
