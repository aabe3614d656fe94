import json

import pytest

from listing_crawler.engine import Record
from listing_crawler.engine.exporter import FileSink, keyword_filename
from listing_crawler.errors import SinkWriteError


def _records():
    return [
        Record(name="Taco Bell", sponsored=False, stars=4.5, rank=1, review_count=120, url="https://y/1"),
        Record(name="Ad Tacos", sponsored=True, url="https://y/ad"),
    ]


def test_file_sink_csv_header_and_rows(tmp_path):
    sink = FileSink(tmp_path, "tacos", "csv")
    sink.append(_records())
    sink.close()
    lines = (tmp_path / "tacos.csv").read_text(encoding="utf-8").splitlines()
    assert lines[0] == "name,sponsored,stars,rank,review_count,url"
    assert lines[1] == "Taco Bell,False,4.5,1,120,https://y/1"
    assert lines[2] == "Ad Tacos,True,0.0,,0,https://y/ad"


def test_file_sink_appends_across_runs(tmp_path):
    first = FileSink(tmp_path, "tacos", "csv")
    first.append(_records()[:1])
    first.close()
    second = FileSink(tmp_path, "tacos", "csv")
    second.append(_records()[1:])
    second.close()
    lines = (tmp_path / "tacos.csv").read_text(encoding="utf-8").splitlines()
    assert len(lines) == 3
    assert sum(1 for line in lines if line.startswith("name,")) == 1


def test_file_sink_json_lines(tmp_path):
    sink = FileSink(tmp_path, "pizza places", "json")
    sink.append(_records())
    sink.close()
    path = tmp_path / "pizza-places.jsonl"
    rows = [json.loads(line) for line in path.read_text(encoding="utf-8").splitlines()]
    assert rows[0]["name"] == "Taco Bell"
    assert rows[1]["rank"] is None
    assert sink.rows_written == 2


def test_file_sink_rejects_writes_after_close(tmp_path):
    sink = FileSink(tmp_path, "tacos")
    sink.close()
    assert sink.closed
    with pytest.raises(ValueError):
        sink.append(_records())


def test_file_sink_unknown_format(tmp_path):
    with pytest.raises(ValueError):
        FileSink(tmp_path, "tacos", "xml")


@pytest.mark.parametrize(
    ("keyword", "expected"),
    [
        ("tacos", "tacos.csv"),
        ("pizza  places", "pizza-places.csv"),
        ("café/bar", "caf_bar.csv"),
    ],
)
def test_keyword_filename(keyword, expected):
    assert keyword_filename(keyword, "csv") == expected


def test_file_sink_unwritable_directory(tmp_path):
    blocker = tmp_path / "output"
    blocker.write_text("not a directory", encoding="utf-8")
    with pytest.raises(SinkWriteError):
        FileSink(blocker, "tacos", "csv")
