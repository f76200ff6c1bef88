# backend/wsgi.py
from tradesphere import create_app

app = create_app()
