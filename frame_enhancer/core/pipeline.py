import time
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple, Union

import numpy as np

from .pixel_buffer import PixelBuffer
from .noise_reduction import GaussianDenoiser
from .lighting_correction import BackgroundShadowCorrector, BrightnessNormalizer
from .contrast_enhancement import AdaptiveContrastEnhancer, GlobalHistogramEqualizer
from .quality_enhancement import UnsharpSharpener
from ..configs.processing_config import ContrastStage, PipelineSettings, ProcessingConfig
from ..io import from_ndarray, read_image, write_image
from ..utils.errors import ValidationError
from ..utils.image_utils import calculate_image_metrics, validate_image, logger
from ..utils.logging_config import get_pipeline_logger

PIPELINE_VERSION = '1.0.0'

QUALITY_METRICS = ('mean_brightness', 'contrast', 'sharpness', 'noise_level', 'edge_density')
# Metrics where a drop counts as an improvement
LOWER_IS_BETTER = frozenset({'noise_level'})

# Quality warning thresholds; ratios of final to original metric except the brightness shift, in grey levels
SHARPNESS_GAIN_LIMIT = 8.0
EDGE_RETENTION_FLOOR = 0.25
NOISE_GAIN_LIMIT = 3.0
BRIGHTNESS_SHIFT_LIMIT = 100.0

FrameInput = Union[PixelBuffer, np.ndarray, str, Path]


class FramePreprocessingPipeline:
    """
    Ordered frame preprocessing: denoise, shadow correction, brightness
    normalisation, CLAHE or global histogram equalisation, sharpening.

    Every stage except shadow correction is a pure function of its input.
    The shadow corrector keeps a background model across calls, so one
    pipeline instance should serve exactly one sequential frame stream;
    calls on an instance must not overlap.
    """

    def __init__(self,
                 settings: Optional[PipelineSettings] = None,
                 config: Optional[ProcessingConfig] = None):
        self.config = config or ProcessingConfig()
        self.settings = settings or PipelineSettings()

        self.denoiser = GaussianDenoiser()
        self.shadow_corrector = BackgroundShadowCorrector()
        self.brightness_normalizer = BrightnessNormalizer()
        self.contrast_enhancer = AdaptiveContrastEnhancer(self.config.clahe_params())
        self.histogram_equalizer = GlobalHistogramEqualizer()
        self.sharpener = UnsharpSharpener(self.denoiser)

        self.pipeline_logger = get_pipeline_logger(__name__)
        self.stats = self._empty_statistics()

        logger.info(f"FramePreprocessingPipeline initialized with settings: {self.settings}")

    def process(self, source: PixelBuffer,
                settings: Optional[PipelineSettings] = None) -> PixelBuffer:
        """
        Run the enabled stages over a copy of ``source``.

        Returns ``source`` itself when the pipeline is disabled, otherwise a
        new buffer of the same dimensions.

        Raises:
            ValidationError: if ``source`` is not a well-formed PixelBuffer
        """
        settings = settings or self.settings
        if not settings.enabled:
            return source

        self._check_buffer(source)
        processed, _ = self._execute_pipeline(source.copy(), settings)
        return processed

    def reset_background(self):
        """Forget the learned background; the next shadow pass only learns"""
        self.shadow_corrector.reset()
        self.stats['background_resets'] += 1

    @property
    def background_model(self) -> Optional[np.ndarray]:
        return self.shadow_corrector.background_model

    def _check_buffer(self, source):
        if not isinstance(source, PixelBuffer):
            raise ValidationError(f"Expected a PixelBuffer, got {type(source).__name__}")
        source.validate()

    def _enabled_stages(self, settings: PipelineSettings) -> List[Tuple[str, Any]]:
        """Stages to run, in their fixed order"""
        stages = []
        if settings.denoise:
            stages.append(('denoise', self.denoiser))
        if settings.shadow_correction:
            stages.append(('shadow_correction', self.shadow_corrector))
        if settings.brightness_norm:
            stages.append(('brightness_norm', self.brightness_normalizer))

        if settings.contrast is ContrastStage.CLAHE:
            stages.append(('clahe', self.contrast_enhancer))
        elif settings.contrast is ContrastStage.HISTOGRAM_EQ:
            stages.append(('histogram_eq', self.histogram_equalizer))

        if settings.motion_blur_comp:
            stages.append(('motion_blur_comp', self.sharpener))
        return stages

    def _execute_pipeline(self, working: PixelBuffer, settings: PipelineSettings,
                          intermediates: Optional[Dict[str, PixelBuffer]] = None
                          ) -> Tuple[PixelBuffer, List[str]]:
        """Apply the enabled stages in order; each output feeds the next stage"""
        steps = []

        if settings.contrast is ContrastStage.CLAHE:
            # config may have been edited since the last call
            self.contrast_enhancer.params = self.config.clahe_params()

        for step_number, (name, stage) in enumerate(self._enabled_stages(settings), start=1):
            if self.config.LOG_PROCESSING_STEPS:
                self.pipeline_logger.log_stage(step_number, name, working.width, working.height)

            working = stage.apply(working)
            steps.append(name)

            if intermediates is not None:
                intermediates[name] = working.copy()

        return working, steps

    def process_frame(self, frame: FrameInput, options: Optional[Dict] = None) -> Dict[str, Any]:
        """
        Process one frame and report metrics, steps and warnings

        Args:
            frame: PixelBuffer, OpenCV-style uint8 array (gray, BGR or BGRA) or image path
            options: Stage toggles and output options overriding the pipeline settings

        Returns:
            Processing results with metadata; failures are reported, not raised
        """
        start_time = time.perf_counter()
        self.stats['total_processed'] += 1

        source_path = "unknown"

        try:
            opts = self._parse_processing_options(options)
            buffer, source_path = self._load_frame(frame)

            settings = self._settings_from_options(opts)
            result = self._initialize_result_structure(buffer, source_path, opts)

            self.pipeline_logger.log_processing_start(
                "frame preprocessing",
                {"source": source_path, "size": f"{buffer.width}x{buffer.height}"}
            )

            if settings.enabled:
                intermediates = {} if opts['save_intermediate_steps'] else None
                processed, steps = self._execute_pipeline(buffer.copy(), settings, intermediates)
                result['processing_steps'] = steps
                if intermediates is not None:
                    result['intermediate_images'] = intermediates
                    self._save_intermediate_steps(intermediates, opts)
            else:
                processed = buffer

            processing_time = time.perf_counter() - start_time
            self._finalize_results(result, processed, processing_time, opts)

            self.stats['successful_processed'] += 1
            self._update_processing_stats(processing_time, success=True)

            self.pipeline_logger.log_processing_end(
                "frame preprocessing", True, processing_time,
                {"steps": len(result['processing_steps'])}
            )
            return result

        except Exception as e:
            processing_time = time.perf_counter() - start_time
            self.pipeline_logger.log_error_with_context(e, {"source": source_path})
            self._update_processing_stats(processing_time, success=False, error=str(e))
            return self._handle_processing_error(e, processing_time, source_path)

    def _load_frame(self, frame: FrameInput) -> Tuple[PixelBuffer, str]:
        if isinstance(frame, PixelBuffer):
            self._check_buffer(frame)
            return frame, "pixel_buffer"

        if isinstance(frame, (str, Path)):
            return read_image(frame), str(frame)

        if not validate_image(frame):
            raise ValidationError("Invalid input frame")
        return from_ndarray(frame), "numpy_array"

    def _parse_processing_options(self, options: Optional[Dict]) -> Dict:
        """Merge caller options over the pipeline's current settings"""
        default_options = {
            # Stage toggles
            'enabled': self.settings.enabled,
            'denoise': self.settings.denoise,
            'shadow_correction': self.settings.shadow_correction,
            'brightness_norm': self.settings.brightness_norm,
            'contrast': self.settings.contrast,
            'motion_blur_comp': self.settings.motion_blur_comp,

            # Output control
            'save_intermediate_steps': self.config.SAVE_INTERMEDIATE_RESULTS,
            'output_directory': self.config.OUTPUT_DIR,
            'output_format': 'png',

            'enable_validation': True,
        }

        if options:
            unknown = set(options) - set(default_options)
            if unknown:
                raise ValidationError(f"Unknown processing options: {sorted(unknown)}")
            default_options.update(options)

        return default_options

    def _settings_from_options(self, opts: Dict) -> PipelineSettings:
        return PipelineSettings(
            enabled=opts['enabled'],
            denoise=opts['denoise'],
            shadow_correction=opts['shadow_correction'],
            brightness_norm=opts['brightness_norm'],
            contrast=opts['contrast'],
            motion_blur_comp=opts['motion_blur_comp'],
        )

    @staticmethod
    def _blank_result(source_path: str) -> Dict:
        return {
            'source_path': source_path,
            'original_image': None,
            'processed_image': None,
            'intermediate_images': {},
            'processing_steps': [],
            'original_metrics': None,
            'final_metrics': None,
            'improvements': {},
            'processing_options': {},
            'processing_time': 0.0,
            'success': False,
            'error': None,
            'warnings': [],
            'pipeline_version': PIPELINE_VERSION
        }

    def _initialize_result_structure(self, buffer: PixelBuffer, source_path: str, opts: Dict) -> Dict:
        result = self._blank_result(source_path)
        result.update(
            original_image=buffer,
            original_metrics=calculate_image_metrics(buffer),
            processing_options=opts.copy(),
        )
        return result

    def _save_intermediate_steps(self, intermediates: Dict[str, PixelBuffer], opts: Dict):
        """Write intermediate stage outputs to disk when an output directory is set"""
        if not opts['output_directory']:
            return

        timestamp = int(time.time() * 1000)
        for step_name, image in intermediates.items():
            filename = f"intermediate_{step_name}_{timestamp}.{opts['output_format']}"
            filepath = Path(opts['output_directory']) / filename
            write_image(image, filepath)
            logger.debug(f"Saved intermediate step {step_name} to {filepath}")

    def _finalize_results(self, result: Dict, processed: PixelBuffer,
                          processing_time: float, opts: Dict):
        result['processed_image'] = processed
        result['processing_time'] = processing_time
        result['success'] = True

        result['final_metrics'] = calculate_image_metrics(processed)
        result['improvements'] = self._calculate_improvements(
            result['original_metrics'],
            result['final_metrics']
        )

        if processing_time > self.config.MAX_PROCESSING_TIME:
            warning = (f"Processing time ({processing_time:.3f}s) exceeded target "
                       f"({self.config.MAX_PROCESSING_TIME}s)")
            result['warnings'].append(warning)
            logger.warning(warning)

        if opts['enable_validation']:
            result['warnings'].extend(self._validate_processing_quality(result))

    @staticmethod
    def _calculate_improvements(original_metrics: Dict, final_metrics: Dict) -> Dict:
        """Per-metric change, signed so that a positive value is an improvement"""
        improvements = {}

        for metric in QUALITY_METRICS:
            before = float(original_metrics[metric])
            after = float(final_metrics[metric])
            delta = before - after if metric in LOWER_IS_BETTER else after - before

            improvements[metric] = {
                'absolute': delta,
                'percentage': delta / before * 100 if before > 0 else 0.0,
                'original': before,
                'final': after
            }

        return improvements

    def _validate_processing_quality(self, result: Dict) -> List[str]:
        """
        Heuristic warnings, each tied to the stage that can cause it.

        - sharpening raised Laplacian variance more than SHARPNESS_GAIN_LIMIT times
        - denoising without sharpening kept under EDGE_RETENTION_FLOOR of the Canny edges
        - median-residual noise grew more than NOISE_GAIN_LIMIT times
        - mean brightness moved over BRIGHTNESS_SHIFT_LIMIT with no lighting stage enabled;
          shadow correction and brightness normalisation shift it on purpose
        """
        warnings = []
        steps = set(result['processing_steps'])
        original = result['original_metrics']
        final = result['final_metrics']

        def grew(metric, limit):
            return original[metric] > 0 and final[metric] > original[metric] * limit

        if 'motion_blur_comp' in steps and grew('sharpness', SHARPNESS_GAIN_LIMIT):
            warnings.append("Sharpening amplified fine detail strongly; check for halos")

        if ('denoise' in steps and 'motion_blur_comp' not in steps
                and original['edge_density'] > 0
                and final['edge_density'] < original['edge_density'] * EDGE_RETENTION_FLOOR):
            warnings.append("Denoising removed most edges")

        if grew('noise_level', NOISE_GAIN_LIMIT):
            warnings.append("Noise level rose sharply; contrast or sharpening may be amplifying sensor noise")

        shift = abs(final['mean_brightness'] - original['mean_brightness'])
        if shift > BRIGHTNESS_SHIFT_LIMIT and not steps & {'shadow_correction', 'brightness_norm'}:
            warnings.append(f"Large brightness change detected ({shift:.1f})")

        return warnings

    def _handle_processing_error(self, error: Exception, processing_time: float,
                                 source_path: str) -> Dict:
        result = self._blank_result(source_path)
        result.update(processing_time=processing_time, error=str(error))
        return result

    def _update_processing_stats(self, processing_time: float, success: bool, error: str = None):
        self.stats['total_processing_time'] += processing_time

        if self.stats['total_processed'] > 0:
            self.stats['average_processing_time'] = (
                self.stats['total_processing_time'] / self.stats['total_processed']
            )

        if not success:
            self.stats['error_count'] += 1
            self.stats['last_error'] = error

    def process_frames(self, frames: List[FrameInput],
                       options: Optional[Dict] = None) -> Dict[str, Any]:
        """
        Process a sequence of frames from one stream, in order.

        The background model carries over from frame to frame.
        """
        if not frames:
            raise ValidationError("No frames provided for processing")

        logger.info(f"Processing {len(frames)} frames")

        results = {
            'individual_results': [],
            'successful_count': 0,
            'failed_count': 0,
            'total_processing_time': 0.0,
            'average_improvements': {}
        }

        successful_results = []
        for idx, frame in enumerate(frames):
            logger.debug(f"Processing frame {idx + 1}/{len(frames)}")

            result = self.process_frame(frame, options)
            results['individual_results'].append(result)
            results['total_processing_time'] += result['processing_time']

            if result['success']:
                successful_results.append(result)
                results['successful_count'] += 1
            else:
                results['failed_count'] += 1

        if successful_results:
            results['average_improvements'] = self._calculate_average_improvements(successful_results)

        logger.info(f"Stream processing completed: {results['successful_count']} successful, "
                    f"{results['failed_count']} failed")

        return results

    @staticmethod
    def _calculate_average_improvements(successful_results: List[Dict]) -> Dict:
        """Mean, min and max percentage improvement per metric across a stream"""
        summary = {}

        for metric in QUALITY_METRICS:
            pct = np.array([r['improvements'][metric]['percentage'] for r in successful_results])
            summary[metric] = {
                'average_improvement_pct': float(pct.mean()),
                'min_improvement_pct': float(pct.min()),
                'max_improvement_pct': float(pct.max()),
                'sample_count': int(pct.size)
            }

        return summary

    def _empty_statistics(self) -> Dict[str, Any]:
        return {
            'total_processed': 0,
            'successful_processed': 0,
            'average_processing_time': 0.0,
            'total_processing_time': 0.0,
            'error_count': 0,
            'last_error': None,
            'background_resets': 0
        }

    def get_processing_statistics(self) -> Dict:
        stats = self.stats.copy()

        if stats['total_processed'] > 0:
            stats['success_rate'] = stats['successful_processed'] / stats['total_processed']
            stats['error_rate'] = stats['error_count'] / stats['total_processed']
        else:
            stats['success_rate'] = 0.0
            stats['error_rate'] = 0.0

        stats['background_model_ready'] = self.shadow_corrector.has_model
        return stats

    def reset_statistics(self):
        self.stats = self._empty_statistics()
        logger.info("Processing statistics reset")

    def benchmark_pipeline(self, frames: List[FrameInput],
                           iterations: int = 3, options: Optional[Dict] = None) -> Dict:
        """Time repeated processing of ``frames``; note this adapts the background model"""
        logger.info(f"Starting benchmark: {len(frames)} frames x {iterations} iterations")

        benchmark_start = time.perf_counter()
        all_results = []

        for iteration in range(iterations):
            for frame_idx, frame in enumerate(frames):
                result = self.process_frame(frame, options)
                all_results.append({
                    'iteration': iteration,
                    'frame_index': frame_idx,
                    'processing_time': result['processing_time'],
                    'success': result['success'],
                    'steps_completed': len(result['processing_steps']),
                    'warnings_count': len(result['warnings']),
                })

        total_benchmark_time = time.perf_counter() - benchmark_start

        successful_results = [r for r in all_results if r['success']]
        processing_times = [r['processing_time'] for r in successful_results]

        benchmark_summary = {
            'total_benchmark_time': total_benchmark_time,
            'total_frames_processed': len(all_results),
            'successful_processes': len(successful_results),
            'success_rate': len(successful_results) / len(all_results) if all_results else 0,
            'average_processing_time': float(np.mean(processing_times)) if processing_times else 0.0,
            'min_processing_time': min(processing_times) if processing_times else 0.0,
            'max_processing_time': max(processing_times) if processing_times else 0.0,
            'median_processing_time': float(np.median(processing_times)) if processing_times else 0.0,
            'processing_time_std': float(np.std(processing_times)) if processing_times else 0.0,
            'detailed_results': all_results,
            'performance_target_met': all(t <= self.config.MAX_PROCESSING_TIME for t in processing_times)
        }

        self.pipeline_logger.log_performance_metric(
            "average_frame_time", benchmark_summary['average_processing_time'] * 1000, "ms"
        )
        logger.info(f"Benchmark completed in {total_benchmark_time:.2f}s, "
                    f"success rate: {benchmark_summary['success_rate']:.1%}")

        return benchmark_summary
