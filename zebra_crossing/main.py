import uvicorn

from zebra_crossing.core.app_factory import create_app

app = create_app()


if __name__ == "__main__":
    uvicorn.run("zebra_crossing.main:app", host="0.0.0.0", port=8000)
