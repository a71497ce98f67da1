from fastapi import FastAPI

from routers import users

app = FastAPI(title="Shop")
app.include_router(users.router, prefix="/api")


@app.get("/health")
def health():
    """Health check."""
    return {"status": "ok"}
