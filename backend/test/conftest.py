import os

# 테스트 중에는 logs/ 에 파일을 만들지 않음
os.environ.setdefault("LOG_FILE_ENABLED", "false")
