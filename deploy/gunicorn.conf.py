# Gunicorn configuration
#
# One worker process only: the batch scheduler and its single-flight guard
# live in-process, so extra workers would each run their own cron job.
bind = "127.0.0.1:8000"
workers = 1
worker_class = "gthread"
threads = 8
# Manual batch runs are synchronous and may take minutes
timeout = 600
keepalive = 5
errorlog = "/var/log/cf-tracker/gunicorn-error.log"
accesslog = "/var/log/cf-tracker/gunicorn-access.log"
loglevel = "info"
wsgi_app = "wsgi:app"
