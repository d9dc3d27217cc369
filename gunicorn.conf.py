# Gunicorn configuration file
import os

# Application factory
wsgi_app = 'app:create_app()'

# Server socket
# Loopback only by default; the agent has no authentication of its own
bind = f"{os.getenv('AGENT_HOST', '127.0.0.1')}:{os.getenv('AGENT_PORT', '43765')}"
backlog = 256

# Worker processes
# Lifecycle locks live in process memory, so there must be exactly one worker
workers = 1
worker_class = 'eventlet'
worker_connections = 200
timeout = 600  # image builds during `compose up` can take minutes
keepalive = 5

# Logging
accesslog = os.getenv('ACCESS_LOG', '-')
errorlog = os.getenv('ERROR_LOG', '-')
loglevel = os.getenv('LOG_LEVEL', 'info').lower()
access_log_format = '%(h)s %(l)s %(u)s %(t)s "%(r)s" %(s)s %(b)s "%(f)s" "%(a)s"'

# Process naming
proc_name = 'ctf_web_launcher'

# Server mechanics
daemon = False
pidfile = None
umask = 0o022
user = None
group = None
tmp_upload_dir = None

# The eventlet worker must patch before the app (and its locks) is imported
preload_app = False

# Restart workers gracefully
graceful_timeout = 30


# Worker lifecycle callbacks for debugging
def worker_int(worker):
    """Called when a worker receives SIGINT or SIGQUIT"""
    print(f"Worker {worker.pid} received interrupt signal")


def worker_abort(worker):
    """Called when a worker times out"""
    print(f"Worker {worker.pid} timed out and is being killed")
    import traceback
    import sys
    traceback.print_stack(file=sys.stderr)


def on_starting(server):
    """Called just before the master process is initialized."""
    print("Starting CTF Web Launcher agent...")


def when_ready(server):
    """Called just after the server is started."""
    print(f"CTF Web Launcher agent is ready. Listening on {bind}")


def on_exit(server):
    """Called just before exiting."""
    print("CTF Web Launcher agent shutting down...")
