import logging
import colorlog
from flask import Flask, jsonify
from config import config
from backoffice.extensions import db, migrate
from backoffice.exceptions import BackofficeError

# CLI 命令
from backoffice import commands


def create_app(config_name='default'):
    """后台应用工厂函数"""
    app = Flask(__name__)

    # 1. 加载配置
    app.config.from_object(config[config_name])
    config[config_name].init_app(app)

    # 2. 初始化扩展
    db.init_app(app)
    migrate.init_app(app, db)

    # 3. 配置日志
    configure_logging(app)

    # 4. 注册蓝图 (Blueprints)
    register_blueprints(app)

    # 5. 注册全局错误处理
    register_error_handlers(app)

    # 6. 注册 CLI 命令
    register_commands(app)

    return app


def register_blueprints(app):
    """注册业务模块蓝图"""
    # 采购管理蓝图
    from backoffice.blueprints.purchase import purchase_bp
    app.register_blueprint(purchase_bp, url_prefix='/purchase')

    # 库存查询蓝图
    from backoffice.blueprints.stock import stock_bp
    app.register_blueprint(stock_bp, url_prefix='/stock')


def register_error_handlers(app):
    @app.errorhandler(BackofficeError)
    def handle_backoffice_error(e):
        if e.code >= 500:
            app.logger.error(f'{type(e).__name__}: {e.message}')
        return jsonify(e.to_dict()), e.code

    @app.errorhandler(404)
    def page_not_found(e):
        return jsonify({'success': False, 'code': 404, 'message': 'Not found'}), 404

    @app.errorhandler(405)
    def method_not_allowed(e):
        return jsonify({'success': False, 'code': 405, 'message': 'Method not allowed'}), 405

    @app.errorhandler(500)
    def internal_server_error(e):
        return jsonify({'success': False, 'code': 500, 'message': 'Internal server error'}), 500


def register_commands(app):
    """注册 Flask CLI 命令"""
    app.cli.add_command(commands.status)
    app.cli.add_command(commands.forge)
    app.cli.add_command(commands.stock_drift)
    app.cli.add_command(commands.fix_schema)


def configure_logging(app):
    """配置日志级别；调试模式下使用彩色控制台输出"""
    app.logger.setLevel(app.config.get('LOG_LEVEL', 'INFO'))
    if app.debug:
        handler = logging.StreamHandler()
        handler.setLevel(logging.DEBUG)

        formatter = colorlog.ColoredFormatter(
            "%(log_color)s[%(asctime)s] %(levelname)-8s%(reset)s %(blue)s%(message)s",
            datefmt="%H:%M:%S",
            reset=True,
            log_colors={
                'DEBUG':    'cyan',
                'INFO':     'green',
                'WARNING':  'yellow',
                'ERROR':    'red',
                'CRITICAL': 'red,bg_white',
            },
            secondary_log_colors={},
            style='%'
        )
        handler.setFormatter(formatter)
        app.logger.addHandler(handler)
