"""
Lancement local du service d'inscriptions: `python -m ticketing`.

Variables lues:
- HOST / PORT: adresse d'écoute (0.0.0.0:8000 par défaut)
- UVICORN_RELOAD: reload auto en dev ("1"/"true"/"yes")
- LOG_LEVEL: niveau des logs uvicorn et des loggers `ticketing.*`
"""
import logging
import os

import uvicorn

def main() -> None:
    log_level = os.environ.get("LOG_LEVEL", "info").lower()
    logging.getLogger("ticketing").setLevel(log_level.upper())
    uvicorn.run(
        "ticketing.asgi:app",
        host=os.environ.get("HOST", "0.0.0.0"),
        port=int(os.environ.get("PORT", "8000")),
        reload=os.environ.get("UVICORN_RELOAD", "").lower() in ("1", "true", "yes"),
        log_level=log_level,
    )

if __name__ == "__main__":
    main()
