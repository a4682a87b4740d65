"""
Tests for raw Bluetooth observation loading and station boundaries.
"""

import io
import logging

import pytest

from core.geometry import GreatCircleDistanceFunction, Rectangle
from core.observations import (
    LoaderStatistics,
    StationRegistry,
    extend_boundary,
    load_raw_observations,
    parse_raw_file,
    read_raw_records,
    station_boundary,
)
from core.validation import ValidationError

from conftest import EUCLIDEAN, make_station

HEADER = "deviceid,enterTime,duration,stationID,lat,lon,owner"

# 2019-03-01 08:00:00 UTC
BASE_EPOCH = 1551427200


def raw_line(device_id, time, duration, station_id, lat=-27.5, lon=153.0, owner="BCC"):
    return f"{device_id},2019-03-01 {time},{duration},{station_id},{lat},{lon},{owner}"


def write_raw(path, lines):
    path.write_text("\n".join(lines) + "\n", encoding="utf-8")
    return path


class TestReadRawRecords:
    """Tests for the raw record reader."""

    def test_header_rows_and_blank_lines_skipped(self):
        """Header rows may repeat and blank lines are ignored."""
        text = "\n".join([HEADER, raw_line(1, "08:00:00", 30, "A"), "", HEADER,
                          raw_line(2, "08:01:00", 30, "B")])
        df = read_raw_records(io.StringIO(text))
        assert len(df) == 2
        assert list(df['station_id']) == ['A', 'B']

    def test_wrong_field_count(self):
        """A record with a missing field is fatal."""
        with pytest.raises(ValidationError):
            read_raw_records(io.StringIO("1,2019-03-01 08:00:00,30,A,-27.5,153.0"))


class TestParseRawFile:
    """Tests for parsing one raw file."""

    def test_parse_records(self):
        """Records become observations with epoch enter and leave times."""
        registry = StationRegistry(EUCLIDEAN)
        text = "\n".join([HEADER, raw_line(7, "08:00:00", 30, "A", lat=-27.5, lon=153.0)])
        observations, record_count, skipped = parse_raw_file(io.StringIO(text), registry)
        assert (record_count, skipped) == (1, 0)
        ob = observations[0]
        assert ob.device_id == 7
        assert ob.enter_time == BASE_EPOCH
        assert ob.leave_time == BASE_EPOCH + 30
        assert ob.owner == "BCC"
        assert (ob.station.centre.x, ob.station.centre.y) == (153.0, -27.5)
        assert "A" in registry

    def test_time_zone(self):
        """Enter times are read in the given time zone."""
        registry = StationRegistry(EUCLIDEAN)
        text = raw_line(7, "08:00:00", 30, "A")
        observations, _, _ = parse_raw_file(io.StringIO(text), registry, time_zone="Australia/Brisbane")
        assert observations[0].enter_time == BASE_EPOCH - 10 * 3600

    def test_unparsable_date_is_skipped(self, caplog):
        """A record with a broken enter time is logged and skipped."""
        registry = StationRegistry(EUCLIDEAN)
        text = "\n".join([raw_line(7, "08:00:00", 30, "A"),
                          "7,not a date,30,B,-27.6,153.1,BCC"])
        observations, record_count, skipped = parse_raw_file(io.StringIO(text), registry)
        assert len(observations) == 1
        assert (record_count, skipped) == (2, 1)
        assert "not parsable" in caplog.text

    def test_non_numeric_duration(self):
        """A non-numeric numeric field is fatal."""
        registry = StationRegistry(EUCLIDEAN)
        with pytest.raises(ValidationError):
            parse_raw_file(io.StringIO(raw_line(7, "08:00:00", "abc", "A")), registry)

    def test_station_with_two_locations(self):
        """The same station ID at two places aborts the load."""
        registry = StationRegistry(EUCLIDEAN)
        text = "\n".join([raw_line(7, "08:00:00", 30, "A", lat=-27.5),
                          raw_line(8, "08:05:00", 30, "A", lat=-27.9)])
        with pytest.raises(ValidationError):
            parse_raw_file(io.StringIO(text), registry)

    def test_empty_file(self):
        """A file with only a header gives nothing."""
        registry = StationRegistry(EUCLIDEAN)
        assert parse_raw_file(io.StringIO(HEADER), registry) == ([], 0, 0)


class TestLoadRawObservations:
    """Tests for loading several files into device sequences."""

    @pytest.fixture
    def raw_files(self, tmp_path):
        first = write_raw(tmp_path / "day1.csv", [
            HEADER,
            raw_line(1, "08:10:00", 30, "B", lon=153.1),
            raw_line(2, "09:00:00", 60, "A"),
            raw_line(1, "08:00:00", 30, "A"),
        ])
        second = write_raw(tmp_path / "day2.csv", [
            HEADER,
            raw_line(1, "08:20:00", 30, "C", lon=153.2),
            raw_line(2, "09:05:00", 60, "B", lon=153.1),
        ])
        return [first, second]

    def test_one_sorted_sequence_per_device(self, raw_files):
        """Observations of a device are merged across files and sorted."""
        result = load_raw_observations(raw_files, EUCLIDEAN)
        assert [s.device_id for s in result.sequences] == [1, 2]
        assert [s.sequence_id for s in result.sequences] == [0, 1]
        device_one = result.sequences[0]
        assert [ob.station.station_id for ob in device_one] == ['A', 'B', 'C']
        assert device_one.chronology_check()
        assert sorted(s.station_id for s in result.stations) == ['A', 'B', 'C']

    def test_statistics(self, raw_files):
        """Load statistics count records, sequences and gaps."""
        stats = load_raw_observations(raw_files, EUCLIDEAN).statistics
        assert stats.file_count == 2
        assert stats.record_count == 5
        assert stats.observation_count == 5
        assert stats.sequence_count == 2
        assert stats.gap_count == 3
        # device 1: 570 + 570, device 2: 240
        assert stats.total_time_diff == 1380
        assert stats.unique_station_visit_count == 5
        assert stats.wrong_order_sequence_count == 0

    def test_thread_pool_matches_serial_load(self, raw_files):
        """Parsing in worker threads gives the same sequences."""
        serial = load_raw_observations(raw_files, EUCLIDEAN)
        parallel = load_raw_observations(raw_files, EUCLIDEAN, workers=2, poll_interval=0.01)
        assert [s.device_id for s in parallel.sequences] == [s.device_id for s in serial.sequences]
        for a, b in zip(serial.sequences, parallel.sequences):
            assert [ob.sort_key for ob in a] == [ob.sort_key for ob in b]
        assert parallel.statistics == serial.statistics

    def test_thread_pool_propagates_errors(self, tmp_path, raw_files):
        """A failing file aborts the parallel load."""
        bad = write_raw(tmp_path / "bad.csv", ["1,2,3"])
        with pytest.raises(ValidationError):
            load_raw_observations(raw_files + [bad], EUCLIDEAN, workers=2, poll_interval=0.01)

    def test_nested_observation_counted(self, tmp_path):
        """An observation inside the previous one is a wrong-order, included pair."""
        path = write_raw(tmp_path / "nested.csv", [
            raw_line(5, "08:00:00", 100, "A"),
            raw_line(5, "08:00:50", 30, "B", lon=153.1),
        ])
        stats = load_raw_observations([path], EUCLIDEAN).statistics
        assert stats.wrong_order_pair_count == 1
        assert stats.included_pair_count == 1
        assert stats.wrong_order_sequence_count == 1

    def test_shared_location(self, tmp_path, caplog):
        """Two stations at one place are reported but kept."""
        caplog.set_level(logging.INFO)
        path = write_raw(tmp_path / "shared.csv", [
            raw_line(5, "08:00:00", 10, "A"),
            raw_line(6, "08:00:00", 10, "A2"),
        ])
        result = load_raw_observations([path], EUCLIDEAN)
        assert len(result.stations) == 2
        assert result.statistics.shared_location_count == 1
        assert "multiple Bluetooth readers" in caplog.text

    def test_invalid_worker_count(self, raw_files):
        """At least one worker is needed."""
        with pytest.raises(ValidationError):
            load_raw_observations(raw_files, EUCLIDEAN, workers=0)

    def test_boundary(self, raw_files):
        """The load boundary spans the stations."""
        box = load_raw_observations(raw_files, EUCLIDEAN).boundary()
        assert (box.min_x, box.min_y, box.max_x, box.max_y) == (153.0, -27.5, 153.2, -27.5)


class TestStationRegistry:
    """Tests for station deduplication."""

    def test_same_station_returned(self):
        """A known ID returns the registered station."""
        registry = StationRegistry(EUCLIDEAN)
        first = registry.get_or_create("A", 1.0, 2.0)
        assert registry.get_or_create("A", 1.0, 2.0) is first
        assert len(registry) == 1

    def test_conflicting_location(self):
        """A known ID at another place is fatal."""
        registry = StationRegistry(EUCLIDEAN)
        registry.get_or_create("A", 1.0, 2.0)
        with pytest.raises(ValidationError):
            registry.get_or_create("A", 1.0, 2.5)


class TestBoundaryExtension:
    """Tests for station boundary and its extension."""

    def test_station_boundary(self):
        """The boundary spans the station centres."""
        box = station_boundary([make_station('A', 0, 5), make_station('B', 10, -5)], EUCLIDEAN)
        assert (box.min_x, box.min_y, box.max_x, box.max_y) == (0, -5, 10, 5)

    def test_no_stations(self):
        """Without stations there is no boundary."""
        assert station_boundary([]) is None

    def test_extend_brisbane_box(self):
        """A 1 km buffer strictly contains the Brisbane reference box."""
        dist_func = GreatCircleDistanceFunction()
        box = Rectangle(152.87669, -27.66475, 153.26154, -27.27603, dist_func)
        extended = extend_boundary(box, 1000)
        assert extended.min_x < box.min_x
        assert extended.min_y < box.min_y
        assert extended.max_x > box.max_x
        assert extended.max_y > box.max_y
        # roughly 0.009 degrees of latitude and 0.010 degrees of longitude
        assert box.min_y - extended.min_y == pytest.approx(0.008993, rel=1e-3)
        assert box.min_x - extended.min_x == pytest.approx(0.010136, rel=1e-3)
        # symmetric on both sides of each axis
        assert extended.max_x - box.max_x == pytest.approx(box.min_x - extended.min_x)
        assert extended.max_y - box.max_y == pytest.approx(box.min_y - extended.min_y)

    def test_negative_buffer(self):
        """A negative buffer is rejected."""
        with pytest.raises(ValidationError):
            extend_boundary(Rectangle(0, 0, 1, 1), -5)

    def test_loader_statistics_merge(self):
        """Loader statistics add up."""
        merged = LoaderStatistics(record_count=3, gap_count=1).merge(LoaderStatistics(record_count=2))
        assert merged.record_count == 5
        assert merged.gap_count == 1
        assert len(merged.summary()) == 4
