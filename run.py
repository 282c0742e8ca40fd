"""
Entry point for the Secure Ballot core service.

Usage:
    python run.py

Serves the receipt verification endpoint on http://localhost:5000
"""

from secure_ballot import create_app

app = create_app()

if __name__ == '__main__':
    app.logger.info("Starting Secure Ballot receipt verification service on port 5000")
    app.run(
        host='0.0.0.0',
        port=5000,
        debug=app.config.get('DEBUG', False)
    )
