"""
Tests for trip segmentation of observation sequences.
"""

import pytest

from core.constants import EMPTY_DEVICE_ID, EMPTY_SEQUENCE_TIME
from core.models.sequence import ObservationSequence, observations_to_dataframe, sequences_to_dataframe
from core.models.station import BTObservation
from core.sequences import SegmentationStats, segment_observation_sequences, should_cut, split_sequence
from core.validation import ValidationError

from conftest import EUCLIDEAN, make_sequence, make_station


class TestShouldCut:
    """Tests for the cut decision between two observations."""

    def test_long_slow_gap_is_cut(self):
        """500 m in 1900 s is far below the cut speed."""
        a = BTObservation(1, 0, 100, make_station('A', 0, 0))
        b = BTObservation(1, 2000, 2100, make_station('B', 500, 0))
        assert should_cut(a, b, EUCLIDEAN)

    def test_long_fast_gap_is_not_cut(self):
        """A long gap covering a long distance is still one trip."""
        a = BTObservation(1, 0, 100, make_station('A', 0, 0))
        b = BTObservation(1, 2000, 2100, make_station('B', 10000, 0))
        assert not should_cut(a, b, EUCLIDEAN)

    def test_short_gap_is_not_cut(self):
        """Gaps up to the time limit never cut."""
        a = BTObservation(1, 0, 100, make_station('A', 0, 0))
        b = BTObservation(1, 1300, 1400, make_station('A', 0, 0))
        assert not should_cut(a, b, EUCLIDEAN)

    def test_custom_time_gap(self):
        """The time limit is a parameter."""
        a = BTObservation(1, 0, 100, make_station('A', 0, 0))
        b = BTObservation(1, 700, 800, make_station('B', 100, 0))
        assert should_cut(a, b, EUCLIDEAN, max_time_gap=500)


class TestSplitSequence:
    """Tests for splitting a single device sequence."""

    def test_cut_between_two_singletons(self, stations):
        """A cut between two single observations leaves no trip."""
        sequence = make_sequence([(0, 100, stations[0]), (2000, 2100, stations[0])])
        stats = SegmentationStats()
        assert split_sequence(sequence, EUCLIDEAN, stats=stats) == []
        assert stats.cut_count == 1
        assert stats.dropped_singleton_count == 2

    def test_cut_produces_two_trips(self, stations):
        """Both sides of a cut become trips when long enough."""
        sequence = make_sequence([
            (0, 50, stations[0]), (100, 150, stations[1]),
            (5000, 5100, stations[1]), (5200, 5300, stations[2]),
        ])
        trips = split_sequence(sequence, EUCLIDEAN)
        assert [[ob.enter_time for ob in trip] for trip in trips] == [[0, 100], [5000, 5200]]

    def test_new_trip_starts_at_next_after_singleton(self, stations):
        """After a dropped singleton the next trip starts with the observation after the cut."""
        sequence = make_sequence([
            (0, 100, stations[0]), (2000, 2100, stations[0]), (2200, 2300, stations[1]),
        ])
        trips = split_sequence(sequence, EUCLIDEAN)
        assert len(trips) == 1
        assert [ob.enter_time for ob in trips[0]] == [2000, 2200]

    def test_nested_observation_is_skipped(self, stations):
        """An observation inside the current one is ignored for the cut decision."""
        sequence = make_sequence([
            (0, 500, stations[0]), (100, 200, stations[1]), (600, 700, stations[2]),
        ])
        stats = SegmentationStats()
        trips = split_sequence(sequence, EUCLIDEAN, stats=stats)
        assert len(trips) == 1
        assert [ob.station.station_id for ob in trips[0]] == ['S0', 'S2']
        assert stats.nested_observation_count == 1

    def test_nested_observation_does_not_trigger_cut(self, stations):
        """The gap after a nested observation is measured from the enclosing one."""
        sequence = make_sequence([
            (0, 3000, stations[0]), (100, 200, stations[0]), (3100, 3200, stations[0]),
        ])
        trips = split_sequence(sequence, EUCLIDEAN)
        assert len(trips) == 1
        assert len(trips[0]) == 2

    def test_empty_sequence(self):
        """An empty sequence has no trips."""
        assert split_sequence(ObservationSequence(0), EUCLIDEAN) == []


class TestSegmentObservationSequences:
    """Tests for segmenting a whole load."""

    def test_every_trip_has_two_observations(self, stations):
        """Emitted trips always hold at least two observations."""
        sequences = [
            make_sequence([(0, 100, stations[0])], 0, 1),
            make_sequence([(0, 100, stations[0]), (200, 300, stations[1]),
                           (9000, 9100, stations[1])], 1, 2),
            make_sequence([(0, 100, stations[0]), (150, 250, stations[1]),
                           (300, 400, stations[2])], 2, 3),
        ]
        trips, stats = segment_observation_sequences(sequences, EUCLIDEAN)
        assert len(trips) == 2
        assert all(len(trip) >= 2 for trip in trips)
        assert stats.input_sequence_count == 3
        assert stats.sequence_count == 2

    def test_ids_are_consecutive(self, stations):
        """Trip IDs count up from the start ID across devices."""
        sequences = [
            make_sequence([(0, 100, stations[0]), (200, 300, stations[1]),
                           (9000, 9100, stations[1]), (9200, 9300, stations[2])], 0, 1),
            make_sequence([(0, 100, stations[0]), (200, 300, stations[1])], 1, 2),
        ]
        trips, _ = segment_observation_sequences(sequences, EUCLIDEAN, start_id=10)
        assert [trip.sequence_id for trip in trips] == [10, 11, 12]
        assert [trip.device_id for trip in trips] == [1, 1, 2]

    def test_statistics(self, stations):
        """Durations are capped per observation and long stays counted."""
        sequences = [make_sequence([(0, 100, stations[0]), (200, 600, stations[1])])]
        trips, stats = segment_observation_sequences(sequences, EUCLIDEAN)
        assert stats.observation_count == 2
        assert stats.total_duration == 400  # 100 + min(400, 300)
        assert stats.long_duration_count == 1
        assert stats.max_duration == 400
        assert stats.gap_count == 1
        assert stats.total_time_diff == 100
        assert stats.average_sequence_length == 2

    def test_pedestrian_sequence_counted(self):
        """A slow moving device counts as a potential pedestrian."""
        a, b = make_station('A', 0, 0), make_station('B', 100, 0)
        sequences = [make_sequence([(0, 10, a), (990, 1000, b)])]
        _, stats = segment_observation_sequences(sequences, EUCLIDEAN)
        assert stats.low_speed_sequence_count == 1

    def test_stationary_sequence_not_pedestrian(self, stations):
        """A device seen twice by the same station has zero speed and is not counted."""
        sequences = [make_sequence([(0, 10, stations[0]), (990, 1000, stations[0])])]
        _, stats = segment_observation_sequences(sequences, EUCLIDEAN)
        assert stats.low_speed_sequence_count == 0

    def test_overlap_does_not_add_negative_gap(self, stations):
        """Overlapping observations add no time difference."""
        sequences = [make_sequence([(0, 100, stations[0]), (50, 150, stations[1])])]
        _, stats = segment_observation_sequences(sequences, EUCLIDEAN)
        assert stats.total_time_diff == 0
        assert stats.gap_count == 1

    def test_invalid_time_gap(self, stations):
        """A non-positive time gap is rejected."""
        with pytest.raises(ValidationError):
            segment_observation_sequences([], EUCLIDEAN, max_time_gap=0)

    def test_merge_statistics(self):
        """Counters add up and the maximum duration is kept."""
        first = SegmentationStats(sequence_count=2, observation_count=5, max_duration=100)
        second = SegmentationStats(sequence_count=1, observation_count=3, max_duration=50)
        merged = first.merge(second)
        assert merged.sequence_count == 3
        assert merged.observation_count == 8
        assert merged.max_duration == 100
        assert 'average_duration' in merged.to_dict()


class TestObservationSequence:
    """Tests for the sequence model."""

    def test_empty_sequence_sentinels(self):
        """An empty sequence reports sentinel values."""
        sequence = ObservationSequence(3)
        assert sequence.start_time == EMPTY_SEQUENCE_TIME
        assert sequence.end_time == EMPTY_SEQUENCE_TIME
        assert sequence.device_id == EMPTY_DEVICE_ID
        assert sequence.duration == 0

    def test_add_observation_in_order(self, stations):
        """Appending moves the end time."""
        sequence = ObservationSequence(0)
        sequence.add_observation(BTObservation(7, 0, 100, stations[0]))
        sequence.add_observation(BTObservation(7, 150, 200, stations[1]))
        assert (sequence.device_id, sequence.start_time, sequence.end_time) == (7, 0, 200)
        assert sequence.chronology_check()

    def test_add_observation_out_of_order(self, stations):
        """An observation entering before the end time is rejected."""
        sequence = make_sequence([(0, 100, stations[0])])
        with pytest.raises(ValidationError):
            sequence.add_observation(BTObservation(1, 50, 150, stations[1]))

    def test_to_dict_and_dataframes(self, stations):
        """Summaries expose distance, speed and station order."""
        sequence = make_sequence([(0, 100, stations[0]), (200, 300, stations[2])], sequence_id=4)
        summary = sequence.to_dict()
        assert summary['distance'] == 2000
        assert summary['avg_speed_ms'] == pytest.approx(2000 / 300)
        assert summary['stations'] == ['S0', 'S2']

        df = sequences_to_dataframe([sequence])
        assert list(df['sequence_id']) == [4]
        rows = observations_to_dataframe([sequence])
        assert list(rows['station_id']) == ['S0', 'S2']
        assert sequences_to_dataframe([]).empty
