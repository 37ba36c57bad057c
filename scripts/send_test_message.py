#!/usr/bin/env python3
"""
Send a Test Delivery

Encrypts and signs a text message with the configured WeCom credentials and
posts it to a running intake server, the way WeCom would. Useful for checking
a deployment end to end without the platform.

Usage:
    python scripts/send_test_message.py "紧急bug：登录失败，@张三 请今天修复"
    python scripts/send_test_message.py --url http://localhost:3000 --handshake
"""

import sys
import argparse
import secrets
import time
from pathlib import Path

import httpx

# Add project root to path
PROJECT_ROOT = Path(__file__).parent.parent
sys.path.insert(0, str(PROJECT_ROOT))


def main():
    parser = argparse.ArgumentParser(description="Post an encrypted WeCom delivery to the intake server")
    parser.add_argument("text", nargs="?", default="今天完成了登录模块的前端开发", help="Message text")
    parser.add_argument("--url", type=str, default="http://localhost:3000", help="Server base URL")
    parser.add_argument("--sender", type=str, default="zhangsan", help="FromUserName of the message")
    parser.add_argument("--handshake", action="store_true", help="Send a handshake instead of a message")
    args = parser.parse_args()

    from worklog.common.config import load_config, validate_wecom_config
    from worklog.intake import envelope
    from worklog.intake.crypto import WeComCrypto

    config = load_config()
    valid, missing = validate_wecom_config(config.wecom, for_webhook=True)
    if not valid:
        print(f"[Test] ERROR: missing configuration: {', '.join(missing)}")
        sys.exit(1)

    crypto = WeComCrypto(
        token=config.wecom.token,
        encoding_aes_key=config.wecom.encoding_aes_key,
        corp_id=config.wecom.corp_id,
    )

    timestamp = str(int(time.time()))
    nonce = secrets.token_hex(5)
    endpoint = f"{args.url.rstrip('/')}/api/wechat/webhook"

    if args.handshake:
        challenge = secrets.token_hex(8)
        echostr = crypto.encrypt(challenge)
        params = {
            "msg_signature": crypto.generate_signature(timestamp, nonce, echostr),
            "timestamp": timestamp,
            "nonce": nonce,
            "echostr": echostr,
        }
        response = httpx.get(endpoint, params=params, timeout=10.0)
        print(f"[Test] Handshake -> {response.status_code}: {response.text}")
        if response.text != challenge:
            print(f"[Test] ERROR: expected echo {challenge!r}")
            sys.exit(1)
        return

    inner = envelope.encode({
        "ToUserName": config.wecom.corp_id,
        "FromUserName": args.sender,
        "CreateTime": timestamp,
        "MsgType": "text",
        "Content": args.text,
        "MsgId": str(int(time.time() * 1000)),
        "AgentID": config.wecom.agent_id,
    })
    encrypted = crypto.encrypt(inner)
    body = envelope.encode({
        "ToUserName": config.wecom.corp_id,
        "AgentID": config.wecom.agent_id,
        "Encrypt": encrypted,
    })
    params = {
        "msg_signature": crypto.generate_signature(timestamp, nonce, encrypted),
        "timestamp": timestamp,
        "nonce": nonce,
    }

    started = time.monotonic()
    response = httpx.post(endpoint, params=params, content=body.encode("utf-8"), timeout=10.0)
    elapsed_ms = (time.monotonic() - started) * 1000
    print(f"[Test] Delivery -> {response.status_code} in {elapsed_ms:.0f} ms: {response.text}")

    if response.status_code != 200:
        sys.exit(1)


if __name__ == "__main__":
    main()
