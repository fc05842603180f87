from .app import create_app


def main():
    app = create_app()
    port = app.extensions["storefront.settings"].PORT
    app.run(host="0.0.0.0", port=port, debug=True)


if __name__ == "__main__":
    main()
