import logging
from datetime import datetime, timezone

from flask import Flask, jsonify

from config import PORT

logger = logging.getLogger(__name__)


# ================= FLASK KEEP-ALIVE =================
def create_app(manager):
    """Keep-alive app for uptime monitoring"""
    app = Flask(__name__)

    @app.route('/')
    def home():
        return jsonify({
            "status": "online",
            "service": "Team Cricket Bot",
            "version": "1.0"
        })

    @app.route('/health')
    def health_check():
        return jsonify({
            "status": "healthy",
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "active_matches": manager.match_count()
        })

    return app


def run_flask(app, port=PORT):
    logger.info(f"🌐 Keep-alive server on port {port}")
    # Run without debug/reloader to prevent main thread interference
    app.run(host='0.0.0.0', port=port, debug=False, use_reloader=False)
