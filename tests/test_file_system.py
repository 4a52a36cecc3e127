import io
from pathlib import Path
from unittest.mock import MagicMock

import pytest
from botocore.exceptions import ClientError

from nlp_pipelines.models.exceptions import InputOutputError
from nlp_pipelines.utils.file_system import FileSystem, S3Writer, join_path, parse_storage_location


def client_error(operation):
    return ClientError({"Error": {"Code": "NoSuchBucket", "Message": "missing"}}, operation)


@pytest.fixture
def s3():
    client = MagicMock()
    client.get_paginator.return_value.paginate.return_value = [
        {"Contents": [
            {"Key": "models/ner/model.onnx"},
            {"Key": "models/ner/tokenizer/"},
            {"Key": "models/ner/config.json"},
        ]}
    ]
    return client


def test_parse_storage_location():
    location = parse_storage_location("s3://bucket/models/ner")
    assert location.is_s3
    assert (location.bucket, location.key) == ("bucket", "models/ner")
    assert parse_storage_location("-").storage_type == "stdio"
    assert parse_storage_location("relative/dir").storage_type == "local"


def test_join_path():
    assert join_path("s3://bucket/out/", "result-0.jsonl") == "s3://bucket/out/result-0.jsonl"
    assert join_path("/tmp/out", "result-0.jsonl") == str(Path("/tmp/out") / "result-0.jsonl")


def test_local_walk_and_read(tmp_path):
    (tmp_path / "sub").mkdir()
    (tmp_path / "b.jsonl").write_text("second\n")
    (tmp_path / "sub" / "a.jsonl").write_text("first\r\nline\n")
    file_system = FileSystem()

    paths = file_system.walk(str(tmp_path))

    assert paths == sorted(paths)
    assert len(paths) == 2
    assert list(file_system.iter_lines(str(tmp_path / "sub" / "a.jsonl"))) == ["first", "line"]
    assert file_system.walk(str(tmp_path / "b.jsonl")) == [str(tmp_path / "b.jsonl")]
    with pytest.raises(InputOutputError, match="does not exist"):
        file_system.walk(str(tmp_path / "missing"))


def test_local_writer(tmp_path):
    file_system = FileSystem()
    file_system.make_dirs(str(tmp_path / "out"))
    with file_system.new_writer(str(tmp_path / "out" / "result-0.jsonl")) as sink:
        sink.write("line\n")
    assert (tmp_path / "out" / "result-0.jsonl").read_text() == "line\n"


def test_s3_walk_skips_directory_markers(s3):
    file_system = FileSystem(s3_client=s3)
    assert file_system.walk("s3://bucket/models/ner") == [
        "s3://bucket/models/ner/config.json",
        "s3://bucket/models/ner/model.onnx",
    ]
    s3.get_paginator.return_value.paginate.assert_called_once_with(Bucket="bucket", Prefix="models/ner")


def test_s3_errors_become_io_errors(s3):
    s3.get_paginator.return_value.paginate.side_effect = client_error("ListObjectsV2")
    s3.get_object.side_effect = client_error("GetObject")
    file_system = FileSystem(s3_client=s3)

    with pytest.raises(InputOutputError, match="Failed to list"):
        file_system.walk("s3://bucket/data")
    with pytest.raises(InputOutputError, match="Failed to read"):
        list(file_system.iter_lines("s3://bucket/data/in.jsonl"))


def test_s3_lines(s3):
    body = MagicMock()
    body.iter_lines.return_value = [b'{"input": "a"}', b'{"input": "\xc3\xa9"}']
    s3.get_object.return_value = {"Body": body}

    lines = list(FileSystem(s3_client=s3).iter_lines("s3://bucket/data/in.jsonl"))

    assert lines == ['{"input": "a"}', '{"input": "é"}']
    s3.get_object.assert_called_once_with(Bucket="bucket", Key="data/in.jsonl")


def test_s3_writer_uploads_on_close(s3):
    writer = FileSystem(s3_client=s3).new_writer("s3://bucket/out/result-0.jsonl")
    assert isinstance(writer, S3Writer)
    writer.write("line\n")
    writer.close()
    writer.close()

    s3.put_object.assert_called_once_with(Bucket="bucket", Key="out/result-0.jsonl", Body=b"line\n")


def test_s3_writer_upload_failure(s3):
    s3.put_object.side_effect = client_error("PutObject")
    writer = S3Writer(s3, "bucket", "out/result-0.jsonl")
    with pytest.raises(InputOutputError, match="Failed to upload"):
        writer.close()


def test_local_copy_downloads_s3_prefix(s3):
    def download(bucket, key, destination):
        Path(destination).write_text(key)

    s3.download_file.side_effect = download

    with FileSystem(s3_client=s3).local_copy("s3://bucket/models/ner") as local_dir:
        assert sorted(p.name for p in Path(local_dir).iterdir()) == ["config.json", "model.onnx"]
        assert (Path(local_dir) / "model.onnx").read_text() == "models/ner/model.onnx"
    assert not Path(local_dir).exists()


def test_local_copy_of_local_dir_is_unchanged(tmp_path):
    with FileSystem().local_copy(str(tmp_path)) as local_dir:
        assert local_dir == str(tmp_path.absolute())


def test_stdin_lines(monkeypatch):
    monkeypatch.setattr("sys.stdin", io.StringIO("a\nb\n"))
    assert list(FileSystem().iter_lines("-")) == ["a", "b"]
