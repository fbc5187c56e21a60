"""Action server HTTP service: FastAPI app around the sandbox pipeline.

Quickstart::

    action-server serve --host 127.0.0.1 --port 3000

Environment variables (also read from ``.env``)::

    PORT                      Listen port (default 3000)
    HOST                      Listen address (default 127.0.0.1)
    MAX_CONCURRENT_REQUESTS   Tool runs allowed at once (default 5)
    REQUEST_TIMEOUT           Per-run deadline in milliseconds (default 30000)
    SCRATCH_ROOT              Parent of per-request directories (default: system temp dir)
    TOOL_COMMAND / TOOL_ARGS  Tool to run (default ``gemini --sandbox``)
    LOG_LEVEL / LOG_FILE      Logging level and optional log file
"""
