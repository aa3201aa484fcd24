"""
CLI client for the code-share classroom server.

Supports:
- Student editor stream:   ws/code/   (pushes a file's contents whenever it changes)
- Teacher view:            ws/teach/  (selects a student, prints every snapshot)
- HTTP roster:             GET  /api/students/
- HTTP logout:             POST /api/students/logout/

WebSocket protocol:
- Student sends:  {"type":"code","editor":"<whole file>"}
- Teacher sends:  {"type":"select","id":"<student id>"}  or  {"type":"roster"}
- Server sends:
  - {"type":"connected", ...}
  - {"type":"code","editor":"..."}          (teacher only)
  - {"type":"roster","students":[...]}      (teacher only, on request)
  - {"type":"error","error":"..."}

Identity: when the server runs with CLASSROOM_TRUST_CLIENT_IDENTITY on, the
student names itself with ?id=&username=&display_name=; otherwise the socket
must carry a logged-in session cookie (--cookie).
"""

from __future__ import annotations

import argparse
import asyncio
import inspect
import json
import os
import sys
import urllib.parse
from typing import Any, Dict, List, Optional, Tuple


def _rstrip_slash(s: str) -> str:
    return s[:-1] if s.endswith("/") else s


def _student_ws_url(
    ws_base: str, student_id: Optional[str], username: Optional[str], display_name: Optional[str]
) -> str:
    params = {}
    if student_id:
        params["id"] = student_id
    if username:
        params["username"] = username
    if display_name:
        params["display_name"] = display_name
    query = urllib.parse.urlencode(params)
    return f"{_rstrip_slash(ws_base)}/ws/code/" + (f"?{query}" if query else "")


def _teacher_ws_url(ws_base: str) -> str:
    return f"{_rstrip_slash(ws_base)}/ws/teach/"


def _http_url(http_base: str, path: str) -> str:
    return f"{_rstrip_slash(http_base)}{path}"


def _headers(api_key: Optional[str], origin: Optional[str], cookie: Optional[str]) -> List[Tuple[str, str]]:
    headers = []
    if origin:
        headers.append(("Origin", origin))
    if api_key:
        headers.append(("X-API-KEY", api_key))
    if cookie:
        headers.append(("Cookie", cookie))
    return headers


def _code_frame(editor: str) -> str:
    # The server speaks for the socket's own identity; no id on the frame.
    return json.dumps({"type": "code", "editor": editor}, separators=(",", ":"), ensure_ascii=False)


def _select_frame(student_id: str) -> str:
    return json.dumps({"type": "select", "id": student_id}, separators=(",", ":"))


async def _stdin_line() -> str:
    return await asyncio.to_thread(sys.stdin.readline)


async def _connect(url: str, headers: List[Tuple[str, str]]):
    import websockets  # type: ignore

    kwargs: Dict[str, Any] = {}
    if headers:
        sig = inspect.signature(websockets.connect)
        if "additional_headers" in sig.parameters:
            kwargs["additional_headers"] = headers
        elif "extra_headers" in sig.parameters:
            kwargs["extra_headers"] = headers
    return await websockets.connect(url, **kwargs)


def _have_websockets() -> bool:
    try:
        import websockets  # type: ignore  # noqa: F401
    except ImportError:
        print("Missing dependency: websockets. Install with: pip install 'codeshare[client]'", file=sys.stderr)
        return False
    return True


async def run_student(
    *,
    ws_base: str,
    headers: List[Tuple[str, str]],
    student_id: Optional[str],
    username: Optional[str],
    display_name: Optional[str],
    path: str,
    interval: float,
) -> int:
    if not _have_websockets():
        return 2

    url = _student_ws_url(ws_base, student_id, username, display_name)
    async with (await _connect(url, headers)) as ws:
        hello = json.loads(await ws.recv())
        sys.stderr.write(f"[connected as {hello.get('id')}]\n")

        last_mtime: Optional[float] = None
        while True:
            try:
                mtime = os.stat(path).st_mtime
            except FileNotFoundError:
                mtime = None
            if mtime is not None and mtime != last_mtime:
                last_mtime = mtime
                with open(path, encoding="utf-8", errors="replace") as f_in:
                    await ws.send(_code_frame(f_in.read()))
            # Surface server errors (e.g. snapshot too large) without blocking the watch loop.
            try:
                raw = await asyncio.wait_for(ws.recv(), timeout=interval)
            except asyncio.TimeoutError:
                continue
            msg = json.loads(raw)
            if msg.get("type") == "error":
                sys.stderr.write(f"[error {msg.get('error')}: {msg.get('message', '')}]\n")


async def run_teacher(*, ws_base: str, headers: List[Tuple[str, str]], select: Optional[str]) -> int:
    if not _have_websockets():
        return 2

    async with (await _connect(_teacher_ws_url(ws_base), headers)) as ws:

        async def _reader() -> None:
            async for raw in ws:
                msg = json.loads(raw)
                t = msg.get("type")
                if t == "code":
                    sys.stdout.write("\n----- snapshot -----\n")
                    sys.stdout.write(msg.get("editor", ""))
                    sys.stdout.write("\n")
                    sys.stdout.flush()
                elif t == "roster":
                    for s in msg.get("students", []):
                        sys.stderr.write(f"  {s.get('username')}  ({s.get('display_name')})\n")
                elif t == "connected":
                    sys.stderr.write(f"[teacher connected, selected={msg.get('selected')}]\n")
                elif t == "error":
                    sys.stderr.write(f"[error {msg.get('error')}]\n")
                # ignore unknown frames

        reader = asyncio.create_task(_reader())
        if select:
            await ws.send(_select_frame(select))

        sys.stderr.write("Type a student id to select it, '?' for the roster. Ctrl+C to quit.\n")
        try:
            while True:
                line = (await _stdin_line()).strip()
                if not line:
                    continue
                if line == "?":
                    await ws.send(json.dumps({"type": "roster"}))
                else:
                    await ws.send(_select_frame(line))
        finally:
            reader.cancel()


async def http_call(
    http_base: str,
    method: str,
    path: str,
    *,
    api_key: Optional[str],
    cookie: Optional[str],
    payload: Optional[Dict[str, Any]] = None,
) -> Dict[str, Any]:
    try:
        import aiohttp  # type: ignore
    except ImportError:
        print("Missing dependency: aiohttp. Install with: pip install 'codeshare[client]'", file=sys.stderr)
        raise

    headers = {"Content-Type": "application/json"}
    if api_key:
        headers["X-API-KEY"] = api_key
    if cookie:
        headers["Cookie"] = cookie
    data = json.dumps(payload) if payload is not None else None

    async with aiohttp.ClientSession() as session:
        async with session.request(method, _http_url(http_base, path), headers=headers, data=data) as resp:
            text = await resp.text()
            try:
                body = json.loads(text) if text else {}
            except json.JSONDecodeError:
                raise RuntimeError(f"Non-JSON response from {path}: {resp.status} {text}")
            if resp.status >= 400:
                raise RuntimeError(f"HTTP {resp.status}: {body}")
            return body


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="CLI client for the code-share classroom server")
    parser.add_argument("--http", default="http://localhost:8000", help="HTTP base, e.g. http://localhost:8000")
    parser.add_argument("--ws", default="ws://localhost:8000", help="WS base, e.g. ws://localhost:8000")
    parser.add_argument("--api-key", help="X-API-KEY value (must match AUTH_API_KEY)")
    parser.add_argument("--origin", help="Optional Origin header for the WebSocket handshake")
    parser.add_argument("--cookie", help="Optional Cookie header (logged-in Django session)")

    sub = parser.add_subparsers(dest="cmd", required=True)

    p_student = sub.add_parser("student", help="Stream a file as a student's editor")
    p_student.add_argument("--id", help="Student id (not needed with --cookie; the session names the student)")
    p_student.add_argument("--username")
    p_student.add_argument("--display-name")
    p_student.add_argument("--file", required=True, help="File whose contents are the editor snapshot")
    p_student.add_argument("--interval", type=float, default=0.5, help="Seconds between change checks")

    p_teacher = sub.add_parser("teacher", help="Watch the selected student's code")
    p_teacher.add_argument("--select", help="Student id to select on connect")

    sub.add_parser("roster", help="List connected students (HTTP)")

    p_logout = sub.add_parser("logout", help="Remove a student (HTTP)")
    p_logout.add_argument("--id", help="Student id (defaults to the logged-in user)")

    return parser


async def main(argv: Optional[List[str]] = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)
    if args.cmd == "student" and not (args.id or args.cookie):
        parser.error("student needs --id or --cookie")
    headers = _headers(args.api_key, args.origin, args.cookie)

    if args.cmd == "student":
        return await run_student(
            ws_base=args.ws,
            headers=headers,
            student_id=args.id,
            username=args.username,
            display_name=args.display_name,
            path=args.file,
            interval=args.interval,
        )
    if args.cmd == "teacher":
        return await run_teacher(ws_base=args.ws, headers=headers, select=args.select)

    if args.cmd == "roster":
        data = await http_call(args.http, "GET", "/api/students/", api_key=args.api_key, cookie=args.cookie)
    elif args.cmd == "logout":
        payload = {"id": args.id} if args.id else {}
        data = await http_call(
            args.http, "POST", "/api/students/logout/", api_key=args.api_key, cookie=args.cookie, payload=payload
        )
    else:
        return 2
    print(json.dumps(data, indent=2, ensure_ascii=False))
    return 0


def run() -> None:
    raise SystemExit(asyncio.run(main()))


if __name__ == "__main__":
    run()
