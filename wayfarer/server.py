import asyncio
import logging
import threading

from flask import Flask, jsonify, request

from wayfarer.assistant import Assistant, build_assistant
from wayfarer.config import get_settings
from wayfarer.logs import configure_logging

log = logging.getLogger(__name__)


class LoopThread:
    """
    One long-lived event loop for the whole app. Breakers, limiters and
    semaphores are bound to it, so every request must run on the same loop.
    """

    def __init__(self):
        self.loop = asyncio.new_event_loop()
        self._thread = threading.Thread(target=self.loop.run_forever, name="wayfarer-loop", daemon=True)
        self._thread.start()

    def run(self, coro, timeout=None):
        return asyncio.run_coroutine_threadsafe(coro, self.loop).result(timeout)

    def stop(self):
        self.loop.call_soon_threadsafe(self.loop.stop)


def create_app(assistant: Assistant = None) -> Flask:
    app = Flask(__name__)
    runner = LoopThread()
    bot = assistant or build_assistant()
    app.extensions["wayfarer"] = {"assistant": bot, "loop": runner}

    @app.post("/chat")
    def chat():
        body = request.get_json(force=True, silent=True) or {}
        message = body.get("message")
        if not isinstance(message, str):
            return jsonify({"error": "message is required"}), 400

        thread_id = body.get("thread_id") or body.get("threadId")
        try:
            out = runner.run(bot.handle_turn(message, thread_id))
        except Exception:
            log.exception("chat_failed", extra={"thread_id": thread_id})
            return jsonify({"error": "internal_error"}), 500

        payload = {"reply": out.reply, "thread_id": out.thread_id, "citations": out.citations}
        if body.get("receipts") and out.receipts is not None:
            payload["receipts"] = out.receipts.model_dump()
        return jsonify(payload)

    @app.post("/threads/<thread_id>/clear")
    def clear(thread_id):
        try:
            runner.run(bot.clear_thread(thread_id))
        except Exception:
            log.exception("clear_failed", extra={"thread_id": thread_id})
            return jsonify({"error": "internal_error"}), 500
        return jsonify({"thread_id": thread_id, "cleared": True})

    @app.get("/healthz")
    def healthz():
        return jsonify({"status": "ok", "targets": bot.resilience.snapshot()})

    return app


if __name__ == "__main__":
    settings = get_settings()
    configure_logging(settings)
    app = create_app()
    app.run(host="0.0.0.0", port=5000, debug=False)
