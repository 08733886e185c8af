# backend/wsgi.py
from managepme import create_app

app = create_app()
