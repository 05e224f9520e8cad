import uvicorn

from sleekproxy.vars import HOST, LOG_LEVEL, PORT


def main():
    uvicorn.run("sleekproxy.server:app", host=HOST, port=PORT, log_level=LOG_LEVEL)


if __name__ == "__main__":
    main()
