"""Vercel ASGI function entrypoint for the DentEval backend."""

from fastapi import FastAPI

from denteval.main import app as inner_app

app = FastAPI()
app.mount("/api", inner_app)
