'''“组装 Flask App 的工厂”（不启动，不产生行为副作用）
负责注入配置、初始化 session、装配引擎服务、注册蓝图和 error handler，
但不负责启动服务（不调用 app.run()），会被 run.py / 单元测试调用'''
# pcinventory/app_factory.py
import os
from typing import Any, Dict, Optional

from dotenv import load_dotenv
from flask import Flask, jsonify
from flask_session import Session
from werkzeug.exceptions import HTTPException

from pcinventory.db.auto_init import auto_init
from pcinventory.db.session import build_engine, make_session_factory
from pcinventory.errors import InventoryError, classify_error
from pcinventory.logger import get_logger
from pcinventory.schemas.error_type import ErrorType
from pcinventory.schemas.operation_result import OperationResult
from pcinventory.services.service_container import ServiceContainer

# 加载环境变量
load_dotenv()

logger = get_logger(__name__)

# 获取项目根目录（使用绝对路径）
BASE_DIR = os.path.dirname(os.path.dirname(os.path.abspath(__file__)))


def create_app(overrides: Optional[Dict[str, Any]] = None) -> Flask:
    """应用工厂函数"""
    app = Flask(__name__)

    # 基础配置
    secret_key = os.getenv('SECRET_KEY', 'dev-secret-key-change-in-production')
    if isinstance(secret_key, bytes):
        secret_key = secret_key.decode('utf-8')
    app.config['SECRET_KEY'] = secret_key

    # 数据库配置（使用绝对路径）
    db_path = os.path.join(BASE_DIR, 'pcinventory.db')
    app.config['DATABASE_URL'] = os.getenv('DATABASE_URL', f"sqlite:///{db_path}")

    # 本地缓冲与写入超时
    app.config['LOCAL_BUFFER_DIR'] = os.getenv('LOCAL_BUFFER_DIR', os.path.join(BASE_DIR, 'local_buffer'))
    app.config['BUILD_WRITE_TIMEOUT'] = float(os.getenv('BUILD_WRITE_TIMEOUT', 10))

    # Session 配置
    app.config['SESSION_TYPE'] = 'filesystem'
    app.config['SESSION_PERMANENT'] = False
    app.config['SESSION_USE_SIGNER'] = True
    app.config['SESSION_KEY_PREFIX'] = 'pcinventory:'
    app.config['SESSION_FILE_DIR'] = os.getenv('SESSION_FILE_DIR', os.path.join(BASE_DIR, 'flask_session'))

    if overrides:
        app.config.update(overrides)

    os.makedirs(app.config['SESSION_FILE_DIR'], exist_ok=True)

    # 初始化 Session
    Session(app)

    # 装配引擎服务
    engine = build_engine(app.config['DATABASE_URL'])
    auto_init(engine)
    app.extensions["pcinventory"] = ServiceContainer(
        make_session_factory(engine),
        app.config['LOCAL_BUFFER_DIR'],
        write_timeout=app.config['BUILD_WRITE_TIMEOUT'],
    )

    # 注册蓝图
    from pcinventory.routes.auth import auth_bp
    from pcinventory.routes.parts import parts_bp
    from pcinventory.routes.builds import builds_bp

    app.register_blueprint(auth_bp)
    app.register_blueprint(parts_bp)
    app.register_blueprint(builds_bp)

    # 注册错误处理
    register_error_handlers(app)

    return app


def register_error_handlers(app):
    """注册错误处理器：统一返回 OperationResult JSON"""
    @app.errorhandler(InventoryError)
    def inventory_error(error):
        error_type, message, status = classify_error(error)
        if status >= 500:
            logger.error("Request failed (%s): %s", error_type.value, message)
        result = OperationResult.failure(error_type, message)
        return jsonify(result.model_dump(mode="json")), status

    @app.errorhandler(HTTPException)
    def http_error(error):
        error_type = ErrorType.NOT_FOUND if error.code == 404 else ErrorType.INPUT_ERROR
        result = OperationResult.failure(error_type, error.description or error.name)
        return jsonify(result.model_dump(mode="json")), error.code
