import os
import sys

# --- Make the clinic_records package importable from the source tree or a frozen exe ---
if getattr(sys, 'frozen', False):
    BASE_DIR = os.path.dirname(sys.executable)
    sys.path.insert(0, BASE_DIR)
    if hasattr(sys, '_MEIPASS'):
        sys.path.insert(0, sys._MEIPASS)
else:
    BASE_DIR = os.path.abspath(os.path.dirname(__file__))
    sys.path.insert(0, BASE_DIR)
# ------------------------------------------------------------------------------------

from clinic_records.app import create_app

if __name__ == '__main__':
    app = create_app()

    # Local single-user store: bind to loopback only.
    # use_reloader=False keeps one process (and one store connection).
    app.run(
        debug=False,
        host=os.environ.get('HOST', '127.0.0.1'),
        port=int(os.environ.get('PORT', 8080)),
        use_reloader=False,
        threaded=True
    )
