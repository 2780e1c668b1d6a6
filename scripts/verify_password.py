#!/usr/bin/env python3
"""관리자 비밀번호 해시 생성 및 검증 스크립트

사용법:
    python scripts/verify_password.py <비밀번호>               # 해시 생성
    python scripts/verify_password.py <비밀번호> <기존 해시>   # 검증
"""
import sys

from live_commerce.services.login_service import LoginService


def main(argv: list[str]) -> int:
    if len(argv) < 2:
        print(__doc__)
        return 1

    password = argv[1]
    print("=== 관리자 비밀번호 해시 ===\n")

    new_hash = LoginService.get_password_hash(password)
    print(f"새로 생성된 해시: {new_hash}")
    print(f"INSERT 예시: INSERT INTO admins (email, name, password_hash) VALUES ('admin@example.com', '관리자', '{new_hash}');\n")

    if len(argv) > 2:
        is_valid = LoginService.verify_password(password, argv[2])
        print(f"기존 해시 검증 결과: {is_valid}")
        return 0 if is_valid else 2
    return 0


if __name__ == "__main__":
    sys.exit(main(sys.argv))
