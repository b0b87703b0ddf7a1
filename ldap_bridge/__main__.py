import uvicorn

from .main import create_app

if __name__ == "__main__":
    # logging is configured by create_app()
    uvicorn.run(create_app(), host="0.0.0.0", port=8000, log_config=None)
