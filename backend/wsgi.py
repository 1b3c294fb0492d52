# backend/wsgi.py
from clothpos import create_app

app = create_app()
