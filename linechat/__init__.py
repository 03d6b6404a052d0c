"""
linechat 패키지 초기화 모듈.

줄 단위 텍스트 채팅(hub/peer) 구성 요소는 다음 하위 모듈에 정리되어 있다.
- protocol: 줄 프레이밍, 와이어 헬퍼, 공용 상수/예외
- hub: 세션 레지스트리 및 브로드캐스트 (server 역할)
- send_queue: 재연결을 견디는 FIFO 송신 큐 (client 역할)
- peer: 연결 상태 머신 및 재연결 백오프 (client 역할)
- terminal: 키 입력 디코더, 프롬프트 보존 로그 출력
- config: 명령행/환경변수 설정
- main: 프로세스 진입점
"""

__all__ = [
    "protocol",
    "hub",
    "send_queue",
    "peer",
    "terminal",
    "config",
    "main",
]

__version__ = "0.1.0"
