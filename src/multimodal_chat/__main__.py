"""Run the backend: ``python -m multimodal_chat``."""

import os

import uvicorn


def main() -> None:
    uvicorn.run(
        "multimodal_chat.api.app:app",
        host=os.getenv("HOST", "0.0.0.0"),
        port=int(os.getenv("PORT", "5000")),
        reload=os.getenv("RELOAD", "").lower() in ("1", "true"),
    )


if __name__ == "__main__":
    main()
