"""
Unit tests for the frame preprocessing pipeline
"""

import itertools

import cv2
import numpy as np
import pytest

from frame_enhancer.configs.processing_config import ContrastStage, PipelineSettings, ProcessingConfig
from frame_enhancer.core.pipeline import FramePreprocessingPipeline
from frame_enhancer.core.pixel_buffer import PixelBuffer
from frame_enhancer.utils.errors import ConfigurationError, PixelBufferError, ValidationError

pytestmark = pytest.mark.unit


class TestProcess:
    """Stage ordering and the buffer contract of process()"""

    def test_disabled_pipeline_returns_source(self, pipeline, random_frame):
        frame = random_frame(6, 6)
        before = frame.data.copy()

        result = pipeline.process(frame, PipelineSettings(enabled=False))

        assert result is frame
        assert np.array_equal(frame.data, before)

    def test_disabled_pipeline_skips_validation(self, pipeline):
        settings = PipelineSettings(enabled=False)
        assert pipeline.process("not a frame", settings) == "not a frame"

    def test_rejects_non_buffer(self, pipeline):
        with pytest.raises(ValidationError):
            pipeline.process(np.zeros((4, 4, 4), dtype=np.uint8))

    def test_rejects_corrupted_buffer(self, pipeline):
        frame = PixelBuffer.blank(4, 4)
        frame.data = np.zeros(10, dtype=np.uint8)

        with pytest.raises(PixelBufferError):
            pipeline.process(frame)

    def test_source_never_modified(self, pipeline, random_frame):
        frame = random_frame(10, 10, seed=2)
        before = frame.data.copy()

        pipeline.process(frame, PipelineSettings(motion_blur_comp=True))

        assert np.array_equal(frame.data, before)

    def test_stage_order(self, processing_config, only_stage, random_frame):
        settings = only_stage(
            denoise=True, brightness_norm=True,
            contrast=ContrastStage.CLAHE, motion_blur_comp=True
        )
        pipeline = FramePreprocessingPipeline(settings, processing_config)
        frame = random_frame(12, 9, seed=7)

        expected = pipeline.sharpener.apply(
            pipeline.contrast_enhancer.apply(
                pipeline.brightness_normalizer.apply(
                    pipeline.denoiser.apply(frame)
                )
            )
        )

        assert pipeline.process(frame) == expected

    def test_histogram_eq_runs_when_selected(self, pipeline, only_stage, random_frame):
        frame = random_frame(8, 8, seed=3)
        settings = only_stage(contrast=ContrastStage.HISTOGRAM_EQ)

        assert pipeline.process(frame, settings) == pipeline.histogram_equalizer.apply(frame)

    def test_clahe_wins_over_histogram_eq(self, pipeline, random_frame):
        frame = random_frame(8, 8, seed=3)
        settings = PipelineSettings.from_flags(
            denoise=False, shadow_correction=False, brightness_norm=False,
            clahe=True, histogram_eq=True
        )

        assert pipeline.process(frame, settings) == pipeline.contrast_enhancer.apply(frame)

    def test_no_stages_gives_equal_copy(self, pipeline, only_stage, random_frame):
        frame = random_frame(5, 5)
        result = pipeline.process(frame, only_stage())

        assert result == frame
        assert result is not frame

    def test_call_settings_override_instance_settings(self, processing_config, only_stage, random_frame):
        pipeline = FramePreprocessingPipeline(PipelineSettings(enabled=False), processing_config)
        frame = random_frame(6, 6, seed=1)

        result = pipeline.process(frame, only_stage(denoise=True))

        assert result == pipeline.denoiser.apply(frame)

    def test_clahe_follows_config_changes(self, processing_config, only_stage, random_frame):
        settings = only_stage(contrast=ContrastStage.CLAHE)
        pipeline = FramePreprocessingPipeline(settings, processing_config)
        frame = random_frame(32, 32, seed=5)

        before = pipeline.process(frame)

        pipeline.config.CLAHE_TILES_PER_AXIS = 2
        pipeline.config.CLAHE_CLIP_LIMIT = 40.0
        after = pipeline.process(frame)

        reference = FramePreprocessingPipeline(settings, ProcessingConfig(
            CLAHE_TILES_PER_AXIS=2,
            CLAHE_CLIP_LIMIT=40.0,
            MAX_PROCESSING_TIME=30.0,
            SAVE_INTERMEDIATE_RESULTS=False,
            OUTPUT_DIR=None,
        ))
        assert after == reference.process(frame)
        assert after != before

    def test_invalid_clahe_config_edit_rejected(self, processing_config, only_stage, random_frame):
        pipeline = FramePreprocessingPipeline(only_stage(contrast=ContrastStage.CLAHE), processing_config)
        pipeline.config.CLAHE_TILES_PER_AXIS = 0

        with pytest.raises(ConfigurationError):
            pipeline.process(random_frame(8, 8))

    def test_dimensions_and_range_for_every_stage_combination(self, processing_config, random_frame):
        frame = random_frame(11, 7, seed=12)

        for denoise, shadow, brightness, blur in itertools.product([False, True], repeat=4):
            for contrast in ContrastStage:
                pipeline = FramePreprocessingPipeline(
                    PipelineSettings(True, denoise, shadow, brightness, contrast, blur),
                    processing_config
                )
                pipeline.process(frame)
                result = pipeline.process(frame)

                assert result.same_shape(frame)
                assert result.data.dtype == np.uint8
                assert result.data.size == frame.data.size


class TestEndToEndScenarios:

    def test_uniform_mid_gray(self, processing_config, only_stage, uniform_frame):
        settings = only_stage(denoise=True, brightness_norm=True, contrast=ContrastStage.CLAHE)
        pipeline = FramePreprocessingPipeline(settings, processing_config)

        result = pipeline.process(uniform_frame(4, 4, (128, 128, 128, 255)))

        # Denoise and brightness leave it alone; CLAHE lifts the single level to 129
        assert result == uniform_frame(4, 4, (129, 129, 129, 255))

    def test_checkerboard_denoise_only(self, pipeline, only_stage, checkerboard_frame):
        result = pipeline.process(checkerboard_frame, only_stage(denoise=True)).as_array()
        src = checkerboard_frame.as_array()

        assert (result[1:-1, 1:-1, :3] == 128).all()
        assert np.array_equal(result[0], src[0])
        assert np.array_equal(result[-1], src[-1])
        assert np.array_equal(result[:, 0], src[:, 0])
        assert np.array_equal(result[:, -1], src[:, -1])

    def test_reset_background_matches_fresh_pipeline(self, processing_config, only_stage, random_frame):
        settings = only_stage(shadow_correction=True)
        used = FramePreprocessingPipeline(settings, processing_config)
        fresh = FramePreprocessingPipeline(settings, processing_config)

        used.process(random_frame(6, 4, seed=1))
        used.process(random_frame(6, 4, seed=2))
        used.reset_background()

        assert used.background_model is None

        frame = random_frame(6, 4, seed=3)
        assert used.process(frame) == fresh.process(frame) == frame
        assert np.array_equal(used.background_model, fresh.background_model)
        assert np.array_equal(
            used.background_model,
            frame.as_array()[..., :3].reshape(-1).astype(np.float32)
        )

    def test_background_adapts_across_calls(self, pipeline, only_stage, uniform_frame):
        settings = only_stage(shadow_correction=True)

        first = pipeline.process(uniform_frame(3, 3, (100, 100, 100, 255)), settings)
        second = pipeline.process(uniform_frame(3, 3, (100, 100, 100, 255)), settings)

        assert first == uniform_frame(3, 3, (100, 100, 100, 255))
        assert second == uniform_frame(3, 3, (128, 128, 128, 255))


class TestProcessFrame:
    """Metadata-producing entry point"""

    def test_success_result(self, pipeline, random_frame):
        frame = random_frame(16, 12, seed=4)
        result = pipeline.process_frame(frame)

        assert result['success'] is True
        assert result['error'] is None
        assert result['source_path'] == "pixel_buffer"
        assert result['processing_steps'] == ['denoise', 'shadow_correction', 'brightness_norm', 'clahe']
        assert result['processed_image'].same_shape(frame)
        assert result['original_metrics']['image_size'] == (12, 16)
        assert set(result['improvements']) == {
            'mean_brightness', 'contrast', 'sharpness', 'noise_level', 'edge_density'
        }
        assert result['pipeline_version'] == "1.0.0"

    def test_accepts_bgr_array(self, pipeline, sample_image):
        result = pipeline.process_frame(sample_image, {'shadow_correction': False})

        assert result['success'] is True
        assert result['source_path'] == "numpy_array"
        assert result['processed_image'].width == 64
        assert result['processed_image'].height == 48
        assert 'shadow_correction' not in result['processing_steps']

    def test_accepts_image_path(self, pipeline, sample_image, tmp_path):
        path = tmp_path / "frame.png"
        cv2.imwrite(str(path), sample_image)

        result = pipeline.process_frame(str(path))

        assert result['success'] is True
        assert result['source_path'] == str(path)

    def test_disabled_returns_input_frame(self, pipeline, random_frame):
        frame = random_frame(5, 5)
        result = pipeline.process_frame(frame, {'enabled': False})

        assert result['success'] is True
        assert result['processing_steps'] == []
        assert result['processed_image'] is frame

    def test_errors_are_reported_not_raised(self, pipeline):
        result = pipeline.process_frame(np.zeros((4, 4), dtype=np.float32))

        assert result['success'] is False
        assert "Invalid input frame" in result['error']
        assert pipeline.get_processing_statistics()['error_count'] == 1

    def test_unknown_option_reported(self, pipeline, random_frame):
        result = pipeline.process_frame(random_frame(4, 4), {'sharpen_harder': True})

        assert result['success'] is False
        assert "sharpen_harder" in result['error']

    def test_intermediate_steps_kept_and_saved(self, pipeline, random_frame, tmp_path):
        result = pipeline.process_frame(
            random_frame(8, 8, seed=2),
            {'save_intermediate_steps': True, 'output_directory': str(tmp_path)}
        )

        assert set(result['intermediate_images']) == set(result['processing_steps'])
        assert result['intermediate_images']['clahe'] == result['processed_image']
        assert len(list(tmp_path.glob("intermediate_*.png"))) == len(result['processing_steps'])

    def test_slow_frame_warns(self, random_frame):
        pipeline = FramePreprocessingPipeline(config=ProcessingConfig(MAX_PROCESSING_TIME=0.0))
        result = pipeline.process_frame(random_frame(8, 8))

        assert result['success'] is True
        assert any("exceeded target" in warning for warning in result['warnings'])


class TestStreamsAndStatistics:

    def test_process_frames_keeps_background(self, pipeline, random_frame):
        frames = [random_frame(6, 6, seed=i) for i in range(3)]
        results = pipeline.process_frames(frames)

        assert results['successful_count'] == 3
        assert results['failed_count'] == 0
        assert len(results['individual_results']) == 3
        assert pipeline.background_model is not None
        assert 'contrast' in results['average_improvements']

    def test_process_frames_counts_failures(self, pipeline, random_frame):
        results = pipeline.process_frames([random_frame(4, 4), "missing.png"])

        assert results['successful_count'] == 1
        assert results['failed_count'] == 1

    def test_process_frames_requires_frames(self, pipeline):
        with pytest.raises(ValidationError):
            pipeline.process_frames([])

    def test_statistics(self, pipeline, random_frame):
        pipeline.process_frame(random_frame(4, 4))
        pipeline.process_frame(random_frame(4, 4, seed=1))
        pipeline.reset_background()

        stats = pipeline.get_processing_statistics()

        assert stats['total_processed'] == 2
        assert stats['successful_processed'] == 2
        assert stats['success_rate'] == 1.0
        assert stats['error_rate'] == 0.0
        assert stats['background_resets'] == 1
        assert stats['background_model_ready'] is False

    def test_reset_statistics(self, pipeline, random_frame):
        pipeline.process_frame(random_frame(4, 4))
        pipeline.reset_statistics()

        stats = pipeline.get_processing_statistics()
        assert stats['total_processed'] == 0
        assert stats['success_rate'] == 0.0

    def test_benchmark(self, pipeline, random_frame):
        frames = [random_frame(8, 8, seed=i) for i in range(2)]
        summary = pipeline.benchmark_pipeline(frames, iterations=2)

        assert summary['total_frames_processed'] == 4
        assert summary['successful_processes'] == 4
        assert summary['success_rate'] == 1.0
        assert len(summary['detailed_results']) == 4
        assert summary['min_processing_time'] <= summary['max_processing_time']
        assert summary['performance_target_met'] is True


def _metrics(**overrides):
    metrics = {
        'mean_brightness': 120.0,
        'contrast': 40.0,
        'sharpness': 10.0,
        'noise_level': 2.0,
        'edge_density': 0.4,
    }
    metrics.update(overrides)
    return metrics


def _result(steps, original=None, final=None):
    return {
        'processing_steps': steps,
        'original_metrics': original or _metrics(),
        'final_metrics': final or _metrics(),
    }


class TestQualityWarnings:
    """Warnings only fire for the stage that can cause them"""

    def test_unchanged_metrics_give_no_warnings(self, pipeline):
        steps = ['denoise', 'shadow_correction', 'brightness_norm', 'clahe', 'motion_blur_comp']
        assert pipeline._validate_processing_quality(_result(steps)) == []

    def test_edge_loss_warns_after_denoise(self, pipeline):
        result = _result(['denoise'], final=_metrics(edge_density=0.05))
        assert "Denoising removed most edges" in pipeline._validate_processing_quality(result)

    def test_moderate_edge_loss_after_denoise_is_expected(self, pipeline):
        result = _result(['denoise'], final=_metrics(edge_density=0.2, sharpness=2.0))
        assert pipeline._validate_processing_quality(result) == []

    def test_edge_loss_ignored_when_sharpening_follows(self, pipeline):
        result = _result(['denoise', 'motion_blur_comp'], final=_metrics(edge_density=0.05))
        assert pipeline._validate_processing_quality(result) == []

    def test_sharpness_gain_warns_only_with_sharpening(self, pipeline):
        final = _metrics(sharpness=100.0)

        sharpened = pipeline._validate_processing_quality(_result(['motion_blur_comp'], final=final))
        equalised = pipeline._validate_processing_quality(_result(['clahe'], final=final))

        assert any("Sharpening" in warning for warning in sharpened)
        assert equalised == []

    def test_noise_growth_warns(self, pipeline):
        result = _result(['clahe'], final=_metrics(noise_level=7.0))
        assert any("Noise level rose" in warning for warning in pipeline._validate_processing_quality(result))

    @pytest.mark.parametrize("steps, expect_warning", [
        (['clahe'], True),
        (['brightness_norm'], False),
        (['shadow_correction', 'clahe'], False),
    ])
    def test_brightness_shift(self, pipeline, steps, expect_warning):
        result = _result(steps, original=_metrics(mean_brightness=20.0), final=_metrics(mean_brightness=140.0))
        warnings = pipeline._validate_processing_quality(result)

        assert any("Large brightness change" in warning for warning in warnings) is expect_warning

    def test_improvements_count_noise_drop_as_gain(self):
        improvements = FramePreprocessingPipeline._calculate_improvements(
            _metrics(), _metrics(noise_level=1.0, contrast=50.0)
        )

        assert improvements['noise_level']['absolute'] == 1.0
        assert improvements['noise_level']['percentage'] == 50.0
        assert improvements['contrast']['absolute'] == 10.0
        assert improvements['sharpness']['absolute'] == 0.0

    def test_improvements_with_zero_baseline(self):
        improvements = FramePreprocessingPipeline._calculate_improvements(
            _metrics(edge_density=0.0), _metrics(edge_density=0.1)
        )
        assert improvements['edge_density']['percentage'] == 0.0
