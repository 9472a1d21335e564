"""
WSGI entry point for the academy portal.

For gunicorn: wsgi:app
"""

from academy import app

if __name__ == "__main__":
    app.run()
