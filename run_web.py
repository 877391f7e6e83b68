"""Launch the Domino Clash web API."""
from src.web.app import app

if __name__ == '__main__':
    print("Starting Domino Clash at http://localhost:5000")
    app.run(debug=False, host='0.0.0.0', port=5000)
