# run.py
"""
run.py 是标准 Flask 服务启动脚本（给开发者 / 运维 / CLI 用）
仅用于本地 / 内网启动 Flask 服务
"""
import os
import sys
from pcinventory.app_factory import create_app
from pcinventory.db.auto_init import auto_init


def get_app_base_dir():
    """
    获取程序根目录
    - 开发态：run.py 所在目录
    - PyInstaller：exe 所在目录
    """
    if getattr(sys, "frozen", False):
        return os.path.dirname(sys.executable)
    return os.path.abspath(os.path.dirname(__file__))


def configure_database():
    """
    未显式配置时，数据库固定为程序根目录下的 pcinventory.db
    """
    if os.getenv("DATABASE_URL"):
        print(f"📦 Using database: {os.environ['DATABASE_URL']}")
        return
    db_path = os.path.join(get_app_base_dir(), "pcinventory.db")
    os.environ["DATABASE_URL"] = f"sqlite:///{db_path}"
    print(f"📦 Using database: {db_path}")


def main():
    # 0️ 统一数据库路径
    configure_database()

    # 1️ 启动前初始化数据库
    auto_init()

    # 2️ 创建 Flask app
    app = create_app()
    print(app.url_map)

    # 3️ 启动参数
    host = os.getenv("HOST", "127.0.0.1")
    port = int(os.getenv("PORT", 5000))
    debug = os.getenv("FLASK_DEBUG", "0") == "1"

    app.run(host=host, port=port, debug=debug, use_reloader=False)


if __name__ == "__main__":
    main()
