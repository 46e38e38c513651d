"""Entry point for running as a module: start the server and open the login page."""
import threading
import webbrowser

import uvicorn

from playlist_feature_ranker.api import app
from playlist_feature_ranker.config import Settings, configure_logging, load_local_env_file

if __name__ == "__main__":
    load_local_env_file()
    configure_logging()
    settings = Settings.from_env()
    print("Opening the Spotify login dialog in your browser...")
    threading.Timer(1.0, webbrowser.open, args=(f"http://localhost:{settings.port}/login",)).start()
    uvicorn.run(app, host="127.0.0.1", port=settings.port)
