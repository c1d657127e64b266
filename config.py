import os
from dotenv import load_dotenv

# 加载 .env 环境变量
load_dotenv()
basedir = os.path.abspath(os.path.dirname(__file__))


def _env_flag(name, default):
    return os.environ.get(name, default).lower() in ('1', 'true', 'yes')


class Config:
    """基础配置类"""
    SECRET_KEY = os.environ.get('SECRET_KEY') or 'hard-to-guess-string'

    # 数据库配置
    SQLALCHEMY_TRACK_MODIFICATIONS = False
    SQLALCHEMY_RECORD_QUERIES = True

    # JSON API 不使用 CSRF 令牌
    WTF_CSRF_ENABLED = False

    # 对账配置
    # True: 整张采购单一次提交，出错全部回滚
    # False: 逐行提交，出错时已处理的行保留
    RECONCILE_ATOMIC = _env_flag('RECONCILE_ATOMIC', 'true')
    # 删除采购单时商品成本价的处理: reset=清零 / keep=保留
    PURCHASE_DELETE_COST_POLICY = os.environ.get('PURCHASE_DELETE_COST_POLICY', 'reset')
    PURCHASE_NUMBER_PREFIX = os.environ.get('PURCHASE_NUMBER_PREFIX', 'ACH')

    LOG_LEVEL = os.environ.get('LOG_LEVEL', 'INFO')

    # 分页
    PURCHASES_PER_PAGE = 15

    @staticmethod
    def init_app(app):
        # 确保 instance 目录存在 (SQLite 数据库文件)
        instance_dir = os.path.join(basedir, 'instance')
        if not os.path.exists(instance_dir):
            os.makedirs(instance_dir)


class DevelopmentConfig(Config):
    """开发环境配置"""
    DEBUG = True
    SQLALCHEMY_DATABASE_URI = os.environ.get('DATABASE_URL') or \
        'sqlite:///' + os.path.join(basedir, 'instance', 'backoffice.db')


class ProductionConfig(Config):
    """生产环境配置"""
    DEBUG = False

    DATABASE_URL = os.environ.get('DATABASE_URL') or \
        'sqlite:///' + os.path.join(basedir, 'instance', 'backoffice_prod.db')
    # PostgreSQL URL 修正（部分托管平台使用 postgres://）
    if DATABASE_URL and DATABASE_URL.startswith('postgres://'):
        DATABASE_URL = DATABASE_URL.replace('postgres://', 'postgresql://', 1)

    SQLALCHEMY_DATABASE_URI = DATABASE_URL

    @classmethod
    def init_app(cls, app):
        Config.init_app(app)


class TestingConfig(Config):
    TESTING = True
    SQLALCHEMY_DATABASE_URI = 'sqlite://'
    WTF_CSRF_ENABLED = False
    RECONCILE_ATOMIC = True
    PURCHASE_DELETE_COST_POLICY = 'reset'

    @staticmethod
    def init_app(app):
        pass


config = {
    'development': DevelopmentConfig,
    'production': ProductionConfig,
    'testing': TestingConfig,
    'default': DevelopmentConfig
}
