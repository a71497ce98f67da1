from flask import Flask, jsonify

from views.items import items_bp

app = Flask(__name__)
app.register_blueprint(items_bp, url_prefix="/api/items")


@app.route("/ping")
def ping():
    return jsonify(status="ok")
