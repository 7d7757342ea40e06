from __future__ import annotations

import pytest

from conftest import solid
from iconkit.icons import s3 as s3_module
from iconkit.icons.models import RenderConfig
from iconkit.icons.pipeline import export_icon_set
from iconkit.icons.s3 import S3Config, get_s3_config, publish_export


class RecordingClient:
    def __init__(self, reject_suffix: str = ""):
        self.puts: list[dict] = []
        self.reject_suffix = reject_suffix

    def put_object(self, **kwargs):
        if self.reject_suffix and kwargs["Key"].endswith(self.reject_suffix):
            raise RuntimeError("slow down")
        self.puts.append(kwargs)

    def generate_presigned_url(self, ClientMethod, Params, ExpiresIn):
        assert ClientMethod == "get_object"
        return f"https://signed/{Params['Key']}"


def test_get_s3_config_normalises_prefix(monkeypatch):
    monkeypatch.setenv("AWS_REGION", "eu-west-1")
    monkeypatch.setenv("S3_BUCKET", "b")
    monkeypatch.setenv("S3_PREFIX", "launcher")
    assert get_s3_config() == S3Config(region="eu-west-1", bucket="b", prefix="launcher/")


@pytest.mark.parametrize("missing", ["AWS_REGION", "S3_BUCKET"])
def test_get_s3_config_requires_region_and_bucket(monkeypatch, missing):
    monkeypatch.setenv("AWS_REGION", "eu-west-1")
    monkeypatch.setenv("S3_BUCKET", "b")
    monkeypatch.delenv(missing)
    with pytest.raises(RuntimeError, match=missing):
        get_s3_config()


def test_publish_continues_after_failed_upload(monkeypatch):
    client = RecordingClient(reject_suffix="mipmap-mdpi/ic_launcher_round.webp")
    monkeypatch.setattr(s3_module, "s3_client", lambda *, region: client)
    result = export_icon_set(solid(300, 200), RenderConfig(), "webp")

    published = publish_export(result, cfg=S3Config(region="r", bucket="b", prefix=""))

    assert len(client.puts) == 14
    assert [f.path for f in published.failures] == ["mipmap-mdpi/ic_launcher_round.webp"]
    assert len(published.keys) == 14
    key = published.keys["mipmap-hdpi/ic_launcher.webp"]
    assert key == f"icons/{published.export_id}/mipmap-hdpi/ic_launcher.webp"
    assert published.urls["mipmap-hdpi/ic_launcher.webp"] == f"https://signed/{key}"
    assert all(p["ContentType"] == "image/webp" for p in client.puts)
