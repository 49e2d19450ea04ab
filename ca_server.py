from pathlib import Path

from flask import Flask, Response, abort, jsonify, request, send_file

from config import Settings
from logger import get_logger
from names import valid_name
from store import ExchangeStore

PEM_MIMETYPE = "application/x-pem-file"


def create_app(store=None, settings=None):
    """
    Build the exchange server around one ExchangeStore.

    Requesters POST CSRs to /csr/<name>; the operator lists and fetches them,
    signs offline and POSTs the certificate to /cer/<name>. Failures are a
    bare 400: the reason stays in the server log.
    """
    settings = settings or Settings()
    store = store if store is not None else ExchangeStore()
    log = get_logger("simplepki.server", level=settings.log_level)

    app = Flask(__name__)
    app.config["EXCHANGE_STORE"] = store
    app.config["PKI_SETTINGS"] = settings

    def checked(name):
        if not valid_name(name):
            abort(400, "name is not valid")
        return name

    # 1. Pending CSRs
    @app.get("/csr/")
    def list_csr():
        return jsonify(sorted(store.list_csr()))

    @app.get("/csr/<name>")
    def get_csr(name):
        data = store.get_csr(checked(name))
        if data is None:
            abort(404)
        return Response(data, mimetype="application/pkcs10")

    @app.post("/csr/<name>")
    def add_csr(name):
        if not store.add_csr(checked(name), request.get_data()):
            abort(400)
        log.info("accepted csr for %s from %s", name, request.remote_addr)
        return "", 201

    # 2. Issued certificates
    @app.get("/cer/")
    def list_cert():
        return jsonify(sorted(store.list_cert()))

    @app.get("/cer/<name>")
    def get_cert(name):
        data = store.get_cert(checked(name))
        if data is None:
            abort(404)
        return Response(data, mimetype=PEM_MIMETYPE)

    @app.post("/cer/<name>")
    def add_cert(name):
        if not store.add_cert(checked(name), request.get_data()):
            abort(400)
        log.info("accepted certificate for %s from %s", name, request.remote_addr)
        return "", 201

    # 3. CA certificate download
    @app.get("/ca")
    def get_ca_cert():
        path = Path(settings.ca_cert_file).resolve()
        if not path.is_file():
            abort(404)
        return send_file(path, mimetype=PEM_MIMETYPE)

    return app


def main():
    settings = Settings.from_env()
    log = get_logger(level=settings.log_level)
    app = create_app(ExchangeStore(), settings)
    log.info("listening on %s:%d", settings.host, settings.port)
    app.run(host=settings.host, port=settings.port, threaded=True)


if __name__ == "__main__":
    main()
