# SPDX-License-Identifier: AGPL-3.0-or-later
# Copyright (C) 2024 ZOCR contributors

import numpy as np

from kanjiscan.config import OCRConfig, ReferenceFont
from kanjiscan.matrix import build_halo, count_bits, empty_matrix
from kanjiscan.recognition import RecognitionEngine, ResultQueue
from kanjiscan.recognition.align import combine_results, component_transformations
from kanjiscan.recognition.components import ComponentBuilder
from kanjiscan.recognition.matrices import ReferenceBatch, ReferenceMatrix, TargetMatrix
from kanjiscan.recognition.scoring import OCRResult
from kanjiscan.recognition.transform import TargetTransformer

CONFIG = OCRConfig(reference_fonts=(ReferenceFont("Test"),))


def _cross():
    pixels = np.zeros((30, 30), dtype=bool)
    pixels[13:17, :] = True
    pixels[:, 13:17] = True
    return pixels


def _box():
    pixels = np.zeros((30, 30), dtype=bool)
    pixels[:3, :] = pixels[-3:, :] = True
    pixels[:, :3] = pixels[:, -3:] = True
    return pixels


def _bar():
    pixels = np.zeros((30, 30), dtype=bool)
    pixels[:, 12:18] = True
    return pixels


def _reference(character, pixels, config=CONFIG):
    matrix = TargetTransformer(pixels, config).stretched_matrix(0, 0)
    return ReferenceMatrix(
        character=character,
        matrix=matrix,
        halo=build_halo(matrix, config.halo_layers - 1),
        pixels=count_bits(matrix),
        font_name="Test",
        components=ComponentBuilder().build(matrix),
    )


class FakeReferences:
    def __init__(self, references, halo_layers):
        self.references = references
        self.halo_layers = halo_layers
        self.requested = []

    def batch(self, font):
        self.requested.append(font.key)
        return ReferenceBatch(self.references, self.halo_layers)


class StageRecorder:
    def __init__(self):
        self.stages = []

    def on_segmentation_step(self, step, task):
        pass

    def on_recognition_stage(self, char_index, stage, results):
        self.stages.append((char_index, stage, len(results)))


def _result(character, score):
    target = TargetMatrix(matrix=empty_matrix(), halo=[], pixels=0)
    reference = ReferenceMatrix(character=character, matrix=empty_matrix(), halo=[], pixels=0)
    return OCRResult(target, reference, 0, 0, (), (), score)


def test_identical_glyph_ranks_first_with_clean_halo():
    references = [_reference("十", _cross()), _reference("口", _box()), _reference("｜", _bar())]
    store = FakeReferences(references, CONFIG.halo_layers)
    recorder = StageRecorder()

    results = RecognitionEngine(CONFIG, store, recorder).run(_cross(), char_index=2)

    top = results[0]
    assert top.character == "十"
    assert top.score == CONFIG.base_score + 4 * 32 * 32
    assert all(count == 0 for count in top.target_halo_pixels)
    assert all(count == 0 for count in top.reference_halo_pixels)
    assert [score for score in (r.score for r in results)] == sorted((r.score for r in results), reverse=True)
    assert [stage for _, stage, _ in recorder.stages] == ["stage1", "stage2", "stage3"]
    assert all(index == 2 for index, _, _ in recorder.stages)


def test_empty_crop_returns_no_results():
    store = FakeReferences([_reference("十", _cross())], CONFIG.halo_layers)

    assert RecognitionEngine(CONFIG, store).run(np.zeros((10, 10), dtype=bool)) == []
    assert store.requested == []


def test_result_queue_keeps_best_and_earliest_on_ties():
    queue = ResultQueue(2)
    first, second, best = _result("a", 5), _result("b", 5), _result("c", 7)
    queue.add_all([first, second, best])
    queue.add(_result("d", 5))

    assert [r.character for r in queue.results()] == ["c", "a"]
    assert len(queue) == 2


def test_combine_results_keeps_best_per_character():
    first = [_result("A", 10), _result("B", 8)]
    second = [_result("A", 9), _result("C", 12)]

    combined = combine_results(first, second, 2)

    assert [(r.character, r.score) for r in combined] == [("C", 12), ("A", 10)]
    assert combine_results(None, second, 1) == second[:1]


def test_target_variants_respect_the_margin():
    transformer = TargetTransformer(_cross(), CONFIG)

    stage1 = transformer.transformations(1, 1, 1)
    stage2 = transformer.transformations(2, 2, 4)

    assert len(stage1) == 9
    assert stage1[len(stage1) // 2].is_identity
    assert all(abs(t.horizontal_translate) <= 1 and abs(t.vertical_translate) <= 1 for t in stage2)
    assert len(stage2) > len(stage1)


def test_component_search_space():
    candidates = component_transformations()

    assert len(candidates) == 81
    assert all(t.horizontal_stretch == 0 or t.vertical_stretch == 0 for t in candidates)


def test_components_of_separate_strokes():
    matrix = empty_matrix()
    matrix[5] = 0b1111
    matrix[20] = 0b1111 << 10

    components = ComponentBuilder().build(matrix)

    assert len(components) == 2
    assert sum(c.pixels for c in components) == 8
