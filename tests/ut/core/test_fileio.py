"""文件读写与日志工具测试"""

from __future__ import annotations

import json
import logging
from pathlib import Path

import pytest

from spkg.utils.fileio import atomic_write, load_json, load_yaml, save_json
from spkg.utils.logger import JSONFormatter, package_log


class TestYaml:
    def test_missing_and_empty(self, tmp_path: Path) -> None:
        assert load_yaml(tmp_path / "none.yml") == {}
        (tmp_path / "empty.yml").write_text("")
        assert load_yaml(tmp_path / "empty.yml") == {}

    def test_non_dict_returns_empty(self, tmp_path: Path) -> None:
        p = tmp_path / "list.yml"
        p.write_text("- a\n- b\n")
        assert load_yaml(p) == {}


class TestJson:
    def test_save_and_load(self, tmp_path: Path) -> None:
        p = tmp_path / "inst" / "foo-1.0"
        save_json(p, {"package_name": "foo", "files": ["bin/foo"]})
        assert p.read_text().endswith("\n")
        assert load_json(p) == {"package_name": "foo", "files": ["bin/foo"]}
        assert list(p.parent.iterdir()) == [p]

    def test_non_object_rejected(self, tmp_path: Path) -> None:
        p = tmp_path / "x.json"
        p.write_text("[1, 2]")
        with pytest.raises(ValueError):
            load_json(p)

    def test_atomic_write_replaces(self, tmp_path: Path) -> None:
        p = tmp_path / "f.txt"
        atomic_write(p, "one")
        atomic_write(p, "two")
        assert p.read_text() == "two"


class TestLogging:
    def test_json_formatter(self) -> None:
        record = logging.LogRecord("spkg.test", logging.INFO, __file__, 10, "安装 %s", ("foo",), None)
        data = json.loads(JSONFormatter().format(record))
        assert data["message"] == "安装 foo"
        assert data["level"] == "INFO"
        assert data["logger"] == "spkg.test"

    def test_package_log_mirrors_spkg_logger(self, tmp_path: Path) -> None:
        log = tmp_path / "logs" / "foo-1.0.log"
        target = logging.getLogger("spkg.services.installer.machine")
        old_level = logging.getLogger("spkg").level
        logging.getLogger("spkg").setLevel(logging.INFO)
        try:
            with package_log(log):
                target.info("进入 %s", "extracting")
            target.info("不应写入")
        finally:
            logging.getLogger("spkg").setLevel(old_level)
        content = log.read_text(encoding="utf-8")
        assert "进入 extracting" in content
        assert "不应写入" not in content
