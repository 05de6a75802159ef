# mlsbridge/main.py
from .entrypoints.fastapi_app import create_app

app = create_app()
