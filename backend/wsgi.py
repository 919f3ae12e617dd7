# backend/wsgi.py
from vitis import create_app

app = create_app()
