import json

import pytest

from reelpipe.app import create_app


@pytest.fixture
def config_file(tmp_path, monkeypatch):
    path = tmp_path / "config" / "config.json"
    path.parent.mkdir()
    path.write_text(
        json.dumps(
            {
                "output_path": str(tmp_path / "library"),
                "work_dir": str(tmp_path / "work"),
                "max_concurrent_jobs": 1,
            }
        )
    )
    monkeypatch.setenv("CONFIG_PATH", str(path))
    return path


@pytest.fixture
def app(config_file):
    return create_app(
        {
            "TESTING": True,
            "SQLALCHEMY_DATABASE_URI": "sqlite://",
            "SOCKETIO_ASYNC_MODE": "threading",
        }
    )


@pytest.fixture
def client(app):
    return app.test_client()
