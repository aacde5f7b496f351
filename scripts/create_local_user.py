"""Create or update a local user for LOCAL login mode (no Koru app credentials configured).

Usage: python scripts/create_local_user.py email password [website_id ...] [--role admin]
"""
import argparse
import os
import sys

from dotenv import load_dotenv

sys.path.append(os.getcwd())
load_dotenv()

from koru_forms.core.database import SessionLocal, init_db
from koru_forms.core.security import get_password_hash
from koru_forms.models.user import User


def main():
    parser = argparse.ArgumentParser(description="Seed a local Koru Forms user")
    parser.add_argument("email")
    parser.add_argument("password")
    parser.add_argument("websites", nargs="*", help="website ids this user may manage")
    parser.add_argument("--role", default="user")
    parser.add_argument("--name", default=None)
    args = parser.parse_args()

    init_db()
    db = SessionLocal()
    try:
        user = db.query(User).filter(User.email == args.email).first()
        if user:
            print(f"Updating existing user {args.email}")
        else:
            user = User(email=args.email)
            db.add(user)
            print(f"Creating user {args.email}")

        user.name = args.name or args.email.split("@")[0]
        user.hashed_password = get_password_hash(args.password)
        user.role = args.role
        user.websites = args.websites
        db.commit()
        print(f"User {args.email} ready with role '{args.role}' and websites {args.websites}")
    except Exception as e:
        db.rollback()
        print(f"Error: {e}")
        sys.exit(1)
    finally:
        db.close()


if __name__ == "__main__":
    main()
