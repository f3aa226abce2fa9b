# backend/wsgi.py
from rims import create_app

app = create_app()

if __name__ == "__main__":
    # Ledger clients default to http://127.0.0.1:3001 (RIMS_STORE_URL)
    app.run(host="127.0.0.1", port=3001, debug=True)
