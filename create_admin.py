"""Create (or reset the password of) an admin user.
Run with: python create_admin.py <username> <email> <password>
"""
import argparse
import os
import sys

# Add project root to path
sys.path.insert(0, os.path.dirname(os.path.abspath(__file__)))

from cftracker import create_app
from cftracker.extensions import db
from cftracker.models import User


def create_admin(username, email, password, reset=False):
    app = create_app()
    with app.app_context():
        user = User.query.filter_by(username=username).first()
        if user and not reset:
            print(f"User {username} already exists. Use --reset to change the password.")
            return 1
        if user is None:
            if User.query.filter_by(email=email).first():
                print(f"Email {email} is already used by another account.")
                return 1
            user = User(username=username, email=email)
            db.session.add(user)
        user.set_password(password)
        db.session.commit()
        print(f"Admin user {username} {'updated' if reset else 'created'}.")
        return 0


def main():
    parser = argparse.ArgumentParser(description='Create an admin account')
    parser.add_argument('username')
    parser.add_argument('email')
    parser.add_argument('password')
    parser.add_argument('--reset', action='store_true',
                        help='reset the password if the user exists')
    args = parser.parse_args()
    sys.exit(create_admin(args.username, args.email, args.password, reset=args.reset))


if __name__ == '__main__':
    main()
