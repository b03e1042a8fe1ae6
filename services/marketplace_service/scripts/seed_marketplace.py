#!/usr/bin/env python3
"""
Seed the marketplace database - run from the marketplace-service container
Creates the admin account, colleges, services and a demo client/provider pair
"""
import sys
import os

# Service root: /app in the container, the parent directory when run locally
sys.path.insert(0, os.getenv("SERVICE_ROOT", os.path.dirname(os.path.dirname(os.path.abspath(__file__)))))

import logging
from database import SessionLocal, init_db
from crud import (
    create_college, create_service, create_user, get_user_by_email, upsert_provider_profile
)
from models import College, Role, Service

logging.basicConfig(level=logging.INFO, format="%(message)s")
logger = logging.getLogger(__name__)

COLLEGES = [
    {"name": "University of Nairobi", "location": "Nairobi"},
    {"name": "Kenyatta University", "location": "Kahawa"},
    {"name": "Strathmore University", "location": "Madaraka"},
]

SERVICES = [
    {"name": "Laptop Repair", "category": "electronics", "description": "Hardware and software fixes"},
    {"name": "Laundry", "category": "household", "description": "Wash, dry and fold"},
    {"name": "Tutoring", "category": "education", "description": "One-on-one course help"},
    {"name": "Moving Help", "category": "logistics", "description": "Hostel and apartment moves"},
]

USERS = [
    {"email": "admin@campusmarket.dev", "password": "admin123", "name": "Admin User", "role": Role.ADMIN},
    {"email": "client@campusmarket.dev", "password": "client123", "name": "Demo Client",
     "role": Role.CLIENT, "contact_phone": "0711000001"},
    {"email": "provider@campusmarket.dev", "password": "provider123", "name": "Demo Provider",
     "role": Role.SERVICE_PROVIDER, "contact_phone": "0711000002"},
]


def seed_marketplace_db():
    init_db()
    db = SessionLocal()
    try:
        if db.query(College).count() == 0:
            for college in COLLEGES:
                create_college(db, **college)
            logger.info(f"Created {len(COLLEGES)} colleges")

        if db.query(Service).count() == 0:
            for service in SERVICES:
                create_service(db, **service)
            logger.info(f"Created {len(SERVICES)} services")

        for user_data in USERS:
            if get_user_by_email(db, user_data["email"]):
                logger.info(f"User {user_data['email']} already exists, skipping")
                continue
            user = create_user(db, **user_data)
            logger.info(f"Created {user.role.value} {user.email}")

            if user.role == Role.SERVICE_PROVIDER:
                college = db.query(College).order_by(College.id).first()
                services = db.query(Service).order_by(Service.id).limit(2).all()
                upsert_provider_profile(db, user.id, {
                    "first_name": "Demo",
                    "last_name": "Provider",
                    "phone_number": user.contact_phone,
                    "college_id": college.id if college else None,
                    "latitude": -1.2795,
                    "longitude": 36.8167,
                    "bio": "Fast and reliable campus services",
                    "service_ids": [s.id for s in services],
                })
                logger.info("Created provider profile for the demo provider")
    finally:
        db.close()


if __name__ == "__main__":
    seed_marketplace_db()
    logger.info("Seeding complete")
