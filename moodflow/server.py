from flask import Flask, request, jsonify, send_from_directory
from flask_cors import CORS
from werkzeug.exceptions import HTTPException
import os, logging, traceback

from moodflow import planner
from moodflow.spotify import AuthError

logging.basicConfig(level=os.getenv("LOG_LEVEL", "INFO"))

REQUIRED_ENV = [
    "SPOTIFY_CLIENT_ID",
    "SPOTIFY_CLIENT_SECRET"
]

STATIC_DIR = os.getenv("STATIC_DIR", os.path.join(os.getcwd(), "public"))

app = Flask(__name__, static_folder=STATIC_DIR, static_url_path="")
app.config["MAX_CONTENT_LENGTH"] = 200 * 1024
CORS(app)


def check_env():
    missing = [k for k in REQUIRED_ENV if not os.environ.get(k)]
    if missing:
        raise RuntimeError(f"Missing env: {', '.join(missing)}")


def get_relay():
    relay = app.extensions.get("moodflow")
    if relay is None:
        from moodflow.main import Relay  # lazy import so startup is fast
        check_env()
        relay = app.extensions["moodflow"] = Relay()
    return relay


@app.errorhandler(planner.ValidationError)
def _bad_request(e):
    return {"error": str(e)}, 400


@app.errorhandler(AuthError)
def _auth_err(e):
    app.logger.error("Spotify auth failed: %s", e)
    return {"error": "Music service unavailable"}, 503


@app.errorhandler(Exception)
def _err(e):
    if isinstance(e, HTTPException):
        return e
    app.logger.error("Unhandled error: %s\n%s", e, traceback.format_exc())
    return {"error": "Server error"}, 500


# Health check (no heavy imports)
@app.route("/healthz")
def healthz():
    return "ok", 200

@app.route("/api/ping")
def ping():
    return "pong", 200


@app.before_request
def _log_req():
    app.logger.info(f"{request.method} {request.path}")


def _body() -> dict:
    body = request.get_json(silent=True)
    return body if isinstance(body, dict) else {}


# --- Spotify-backed routes ---
@app.post("/spotify/therapy")
async def therapy():
    return jsonify(await get_relay().therapy(_body()))

@app.post("/spotify/nostalgia")
async def nostalgia():
    return jsonify(await get_relay().nostalgia(_body()))

@app.post("/spotify/vibe")
async def vibe():
    return jsonify(await get_relay().vibe(_body()))

@app.post("/spotify/bydj")
async def bydj():
    return jsonify(await get_relay().build_by_ingredients(_body()))


# --- Frontend routes ---
@app.route("/")
def index():
    return send_from_directory(app.static_folder, "index.html")

@app.route("/<path:path>")
def static_proxy(path):
    file_path = os.path.join(app.static_folder, path)
    if os.path.isfile(file_path):
        return send_from_directory(app.static_folder, path)
    return send_from_directory(app.static_folder, "index.html")


if __name__ == "__main__":
    # local dev only
    app.run(host="0.0.0.0", port=int(os.getenv("PORT", 3000)))
