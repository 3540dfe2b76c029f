from logging.config import dictConfig


def setup_logging(debug: bool = False, trace: bool = False) -> None:
    """Route s3tool (and optionally botocore) logs to stderr.

    --debug turns on the s3tool logger; --trace also enables botocore's
    wire-level logging for HTTP tracing.
    """
    dictConfig(
        {
            "version": 1,
            "disable_existing_loggers": False,
            "formatters": {
                "plain": {
                    "format": "%(levelname)s> %(message)s",
                },
            },
            "handlers": {
                "stderr": {
                    "class": "logging.StreamHandler",
                    "formatter": "plain",
                    "stream": "ext://sys.stderr",
                },
            },
            "loggers": {
                "s3tool": {
                    "handlers": ["stderr"],
                    "level": "DEBUG" if debug or trace else "WARNING",
                    "propagate": False,
                },
                "botocore": {
                    "handlers": ["stderr"],
                    "level": "DEBUG" if trace else "WARNING",
                    "propagate": False,
                },
            },
        }
    )
