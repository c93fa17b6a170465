"""
Source of truth for tokens & operator channels
==============================================
Supports **multi‑env** (TEST vs PROD) so the bot can report to a sandbox
channel first, then flip the ENV var when you deploy.

Usage
-----
$ export env=TEST  # or PROD (default PROD)
$ python -m tzbot

* .env (git‑ignored) keeps the token and webhook values*
DISCORD_TOKEN=xxx
REPORT_WEBHOOK_URL=https://discord.com/api/webhooks/...

File locations and reconciler tuning live in ``tzbot.infra.config``.
"""
from __future__ import annotations
import os
import logging
from dotenv import load_dotenv

from .util import int_env

load_dotenv()

# ─── Select env ────────────────────────────────────────────────────────────
env = os.getenv("env", "prod").upper()
IS_TEST = env == "TEST"

# ─── Tokens ───────────────────────────────────────────────────────────────
TOKEN = os.getenv("DISCORD_TOKEN")

# ─── Operator reporting ───────────────────────────────────────────────────
# Evictions, guild joins/leaves and failed passes go here, never to end users.
REPORT_WEBHOOK_URL = os.getenv("REPORT_WEBHOOK_URL") or None
if IS_TEST:
    REPORT_CHANNEL_ID = int_env("REPORT_CHANNEL_ID_TEST", int_env("REPORT_CHANNEL_ID", 0))
else:
    REPORT_CHANNEL_ID = int_env("REPORT_CHANNEL_ID", 0)

# Helper: convenience log line
logging.getLogger(__name__).info("Loaded %s env (report channel %s)", env, REPORT_CHANNEL_ID)
