from livechat import create_app

app = create_app()

if __name__ == "__main__":
    # For local testing only; in production run behind a WSGI server: `gunicorn run:app`
    app.run(host="0.0.0.0", port=app.config["PORT"])
