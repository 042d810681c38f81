# webapp/__init__.py
import click
from flask import Flask, has_request_context, request
from flask_babel import gettext as _

from .extensions import db, babel
from core.logging_config import configure_logging
from core.settings import settings


def create_app(config_object=None):
    """アプリケーションファクトリ"""
    from dotenv import load_dotenv
    from werkzeug.middleware.proxy_fix import ProxyFix
    from .config import Config

    # .env を読み込む（環境変数が未設定の場合のみ）
    load_dotenv()

    app = Flask(__name__)
    app.config.from_object(config_object or Config)
    if not app.config.get("SECRET_KEY") and not app.config.get("TESTING"):
        raise RuntimeError("SECRET_KEY must be configured to sign the session cookie")

    # リバースプロキシ（nginx等）使用時のHTTPS検出
    app.wsgi_app = ProxyFix(app.wsgi_app, x_for=1, x_proto=1, x_host=1)

    # 拡張初期化
    db.init_app(app)
    babel.init_app(app, locale_selector=_select_locale)

    with app.app_context():
        configure_logging(app, settings.log_level)

    from .auth import bp as auth_bp
    from .health import health_bp
    from .error_handlers import register_error_handlers

    app.register_blueprint(auth_bp)
    app.register_blueprint(health_bp)
    register_error_handlers(app)
    register_cli_commands(app)

    with app.app_context():
        import core.models  # noqa: F401

        db.create_all()

    return app


def _select_locale():
    """1) cookie lang 2) Accept-Language 3) default"""
    from flask import current_app

    if not has_request_context():
        return current_app.config.get("BABEL_DEFAULT_LOCALE", "en")

    cookie_lang = request.cookies.get("lang")
    if cookie_lang in current_app.config["LANGUAGES"]:
        return cookie_lang
    return request.accept_languages.best_match(current_app.config["LANGUAGES"])


def register_cli_commands(app):
    """CLI コマンドを登録"""
    from shared.application.account_service import AccountService
    from shared.domain.user.exceptions import UserNotFoundError
    from shared.infrastructure.user_directory import SqlAlchemyUserDirectory

    @app.cli.command("delete-user")
    @click.argument("email")
    def delete_user(email):
        """ユーザーと登録済みのパスキーを削除"""
        service = AccountService(SqlAlchemyUserDirectory(db.session))
        try:
            service.delete_account(email)
        except UserNotFoundError as exc:
            raise click.ClickException(_("User %(email)s not found", email=email)) from exc
        click.echo(_("Deleted user %(email)s", email=email))
