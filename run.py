#!/usr/bin/env python3
"""
Main entry point for running the Scout Bookings API
"""

from app.main import create_app
import os

if __name__ == '__main__':
    os.environ.setdefault('FLASK_ENV', 'development')

    app = create_app()

    print("Starting Scout Bookings...")
    print("API available at: http://localhost:5001/api")
    print("\nPress CTRL+C to stop the server")

    app.run(
        host='0.0.0.0',
        port=5001,
        debug=True,
        # The reloader would start a second sync scheduler
        use_reloader=False
    )
