"""
extensions.py - Flask Extensions
Initialize Flask extensions here to avoid circular imports.
Extensions are created here but initialized in app.py with init_app().
"""

from flask_sqlalchemy import SQLAlchemy
from flask_migrate import Migrate
from flask_login import LoginManager
from flask_bcrypt import Bcrypt

# Database ORM (Object-Relational Mapping)
db = SQLAlchemy()

# Database Migration Tool
# Usage: flask db init, flask db migrate, flask db upgrade
migrate = Migrate()

# User Session Management
# Resolves the acting principal for every request
login_manager = LoginManager()

# Password Hashing
bcrypt = Bcrypt()
