"""Create the inventory tables. Usage: python db.py [development|testing|production]"""
import sys

from app import create_app
from models import db


def init_db(config_name=None):
    app = create_app(config_name)
    with app.app_context():
        db.create_all()
        tables = ', '.join(sorted(db.metadata.tables))
        print(f"Initialized {app.config['SQLALCHEMY_DATABASE_URI']}: {tables}")


if __name__ == '__main__':
    init_db(sys.argv[1] if len(sys.argv) > 1 else None)
