# backend/wsgi.py
from scanbizz import create_app

app = create_app()
