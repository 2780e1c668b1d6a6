import logging

import uvicorn
from dotenv import load_dotenv


def main():
    """개발 서버 시작"""

    # .env 파일 로드 (환경변수 설정) - settings 임포트 전에 수행
    load_dotenv()

    from live_commerce.config import settings

    logging.basicConfig(level=settings.LOG_LEVEL.upper())
    logger = logging.getLogger("live_commerce")

    host = settings.BACKEND_HOST
    port = settings.BACKEND_PORT
    debug = settings.DEBUG

    logger.info("라이브커머스 API 서버 시작 중...")

    # 사용자에게 올바른 접속 주소 안내
    if host == "0.0.0.0":
        logger.info(f"서버 주소: http://localhost:{port}")
        logger.info(f"API 문서: http://localhost:{port}/docs")
    else:
        logger.info(f"서버 주소: http://{host}:{port}")
        logger.info(f"API 문서: http://{host}:{port}/docs")

    logger.info(f"디버그 모드: {debug}")

    # FastAPI 앱 실행
    uvicorn.run(
        app="live_commerce.app:app",
        host=host,
        port=port,
        reload=debug,  # 개발 모드에서만 자동 재로드
        log_level="info" if debug else "warning"
    )


if __name__ == "__main__":
    main()
