import asyncio
import os
import stat
import sys

import pytest

from fashion_scraper.adapters.delegating_client import DelegatingClient, parse_tool_output
from fashion_scraper.errors import AcquisitionError, AcquisitionErrorKind

pytestmark = pytest.mark.skipif(sys.platform == "win32", reason="uses POSIX shell scripts")


def write_tool(tmp_path, script, name="fake_curl"):
    path = tmp_path / name
    path.write_text("#!/bin/sh\n" + script)
    path.chmod(path.stat().st_mode | stat.S_IXUSR | stat.S_IXGRP | stat.S_IXOTH)
    return str(path)


async def test_success_splits_body_and_trailer(tmp_path):
    tool = write_tool(tmp_path, (
        "printf '<html><h1>Bomber</h1></html>'\n"
        "printf '\\n__FETCH_META__ 200 https://shop.example/en/p/bomber'\n"
    ))
    result = await DelegatingClient(binary_path=tool).fetch("https://sho.rt/x", timeout=5)

    assert result.body == b"<html><h1>Bomber</h1></html>"
    assert result.status == 200
    assert result.final_url == "https://shop.example/en/p/bomber"


async def test_passes_url_timeout_and_redirect_cap(tmp_path):
    args_file = tmp_path / "args.txt"
    tool = write_tool(tmp_path, (
        f"echo \"$@\" > {args_file}\n"
        "printf 'ok\\n__FETCH_META__ 200 https://shop.example/'\n"
    ))
    await DelegatingClient(binary_path=tool, max_redirects=4).fetch("https://shop.example/", timeout=2.5)

    args = args_file.read_text()
    assert "--max-redirs 4" in args
    assert "--max-time 2.500" in args
    assert args.strip().endswith("https://shop.example/")


async def test_missing_binary_is_unavailable(tmp_path):
    client = DelegatingClient(binary_path=str(tmp_path / "nope"))
    with pytest.raises(AcquisitionError) as exc_info:
        await client.fetch("https://shop.example/", timeout=5)
    assert exc_info.value.kind == AcquisitionErrorKind.SUBPROCESS_UNAVAILABLE


async def test_non_executable_binary_is_unavailable(tmp_path):
    path = tmp_path / "plain"
    path.write_text("#!/bin/sh\necho hi\n")
    os.chmod(path, 0o644)
    with pytest.raises(AcquisitionError) as exc_info:
        await DelegatingClient(binary_path=str(path)).fetch("https://shop.example/", timeout=5)
    assert exc_info.value.kind == AcquisitionErrorKind.SUBPROCESS_UNAVAILABLE


async def test_non_zero_exit_is_subprocess_failed(tmp_path):
    tool = write_tool(tmp_path, "echo 'curl: (6) Could not resolve host' >&2\nexit 6\n")
    with pytest.raises(AcquisitionError) as exc_info:
        await DelegatingClient(binary_path=tool).fetch("https://shop.example/", timeout=5)
    assert exc_info.value.kind == AcquisitionErrorKind.SUBPROCESS_FAILED
    assert "Could not resolve host" in exc_info.value.detail


async def test_exit_28_is_timeout(tmp_path):
    tool = write_tool(tmp_path, "exit 28\n")
    with pytest.raises(AcquisitionError) as exc_info:
        await DelegatingClient(binary_path=tool).fetch("https://shop.example/", timeout=5)
    assert exc_info.value.kind == AcquisitionErrorKind.TIMEOUT


async def test_exit_47_is_redirect_limit(tmp_path):
    tool = write_tool(tmp_path, "exit 47\n")
    with pytest.raises(AcquisitionError) as exc_info:
        await DelegatingClient(binary_path=tool).fetch("https://shop.example/", timeout=5)
    assert exc_info.value.kind == AcquisitionErrorKind.REDIRECT_LIMIT_EXCEEDED


async def test_output_without_trailer_is_malformed(tmp_path):
    tool = write_tool(tmp_path, "printf '<html>no trailer</html>'\n")
    with pytest.raises(AcquisitionError) as exc_info:
        await DelegatingClient(binary_path=tool).fetch("https://shop.example/", timeout=5)
    assert exc_info.value.kind == AcquisitionErrorKind.MALFORMED_SUBPROCESS_OUTPUT


async def test_hung_tool_is_killed_on_timeout(tmp_path):
    tool = write_tool(tmp_path, "exec sleep 30\n")
    client = DelegatingClient(binary_path=tool)
    loop = asyncio.get_running_loop()
    started = loop.time()
    with pytest.raises(AcquisitionError) as exc_info:
        await client.fetch("https://shop.example/", timeout=0.2)
    assert exc_info.value.kind == AcquisitionErrorKind.TIMEOUT
    assert loop.time() - started < 5


async def test_cancellation_kills_the_process(tmp_path):
    pid_file = tmp_path / "pid"
    tool = write_tool(tmp_path, f"echo $$ > {pid_file}\nexec sleep 30\n")
    task = asyncio.create_task(DelegatingClient(binary_path=tool).fetch("https://shop.example/", timeout=30))

    for _ in range(100):
        if pid_file.exists() and pid_file.read_text().strip():
            break
        await asyncio.sleep(0.02)
    await asyncio.sleep(0.1)
    task.cancel()
    with pytest.raises(asyncio.CancelledError):
        await task

    pid = int(pid_file.read_text().strip())
    with pytest.raises(ProcessLookupError):
        os.kill(pid, 0)


def test_parse_tool_output_uses_last_trailer():
    body, status, url = parse_tool_output(
        b"text mentioning __FETCH_META__ 999 x\n__FETCH_META__ 404 https://shop.example/gone"
    )
    assert status == 404
    assert url == "https://shop.example/gone"
    assert body == b"text mentioning __FETCH_META__ 999 x"


@pytest.mark.parametrize("stdout", [
    b"",
    b"<html></html>",
    b"body\n__FETCH_META__ abc https://x.example/",
    b"body\n__FETCH_META__ 200",
    b"body\n__FETCH_META__ 000 https://x.example/",
])
def test_parse_tool_output_rejects_bad_trailers(stdout):
    with pytest.raises(ValueError):
        parse_tool_output(stdout)
