"""Run a quick smoke request against the app.

Calls `/health` and `/api/hero-slides` through FastAPI's TestClient and
prints the responses.
"""

import sys
import os

# Ensure backend folder is on sys.path so `wozamali_office` can be imported
sys.path.insert(0, os.path.abspath(os.path.join(os.path.dirname(__file__), '..')))

from fastapi.testclient import TestClient
from wozamali_office.main import app


def run_testclient():
    client = TestClient(app)
    for path in ('/health', '/api/hero-slides'):
        resp = client.get(path)
        print(path, 'STATUS:', resp.status_code, 'REQUEST-ID:', resp.headers.get('X-Request-ID'))
        print('JSON:', resp.json())


if __name__ == '__main__':
    run_testclient()
