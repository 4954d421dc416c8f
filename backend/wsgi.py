# backend/wsgi.py
# FLASK_APP=wsgi.py python -m flask run, or: python wsgi.py
from toolcrib import create_app

app = create_app()

if __name__ == "__main__":
    # threaded: every open event stream holds a worker
    app.run(host=app.config["HOST"], port=app.config["PORT"], threaded=True)
