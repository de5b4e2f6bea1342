"""
Configuration module for gel integrity analysis pipeline.
Contains all constants, thresholds, and configuration parameters.
"""

from pathlib import Path

# Default user settings (mirrors GelSettings fields)
DEFAULT_GEL_SETTINGS = {
    'auto_detect_lanes': True,
    'num_lanes': 10,
    'lane_margin': 10.0,                      # percent of lane width trimmed (split on both sides)
    'lane_detection_sensitivity': 1.1,        # 0.5 .. 2.0, higher -> more lanes
    'roi_top': 0.0,                           # ROI in percent (0-100)
    'roi_bottom': 0.0,
    'roi_left': 0.0,
    'roi_right': 0.0,
    'invert_image': False,
    'background_subtraction_method': 'rollingBall',
    'background_rolling_ball_radius': 150,
    'background_smoothing': 30,
    'min_peak_prominence': 2.0,               # percent of the 0-255 range
    'smoothing': 5,
    'min_peak_distance': 5,
    'noise_tolerance': 3.0,
    'band_boundary_sigma': 2.5,
    'show_background_profile': True,          # display only
    'rotation_angle': 0.0,                    # degrees, applied before cropping
    'adaptive_noise_floor': True,             # smear threshold from residual histogram
}

# Luminance weights (R, G, B)
LUMA_WEIGHTS = (0.299, 0.587, 0.114)

# Geometry preprocessing
GEOMETRY_PARAMS = {
    'invert_sample_frac': 0.20,      # central region used to judge background brightness
    'invert_stride': 10,             # sampling stride (pixels)
    'invert_brightness_thr': 100.0,  # mean luminance above this -> bright background
    'rotation_margin': 0.15,         # crop margin for rotation search
    'rotation_sample_step': 2,       # row stride for gradient sampling
    'rotation_coarse_range': 8,      # degrees, +/-
    'rotation_coarse_step': 1.0,
    'rotation_fine_range': 0.8,      # degrees around coarse optimum
    'rotation_fine_step': 0.1,
    'roi_hist_step': 4,              # pixel stride for histogram
    'roi_scan_step': 4,              # stride along the scanned axis
    'roi_cross_step': 10,            # stride across the scanned axis
    'roi_threshold_scale': 0.8,      # lower Otsu threshold to keep faint bands
    'roi_threshold_min': 10.0,
    'roi_padding': 0.05,             # padding fraction on each side
}

# Lane segmentation
LANE_PARAMS = {
    'sample_top_frac': 0.10,         # vertical band used for the column profile
    'sample_bottom_frac': 0.90,
    'row_step': 2,
    'smoothing_window': 30,          # Gaussian window for the column profile
    'threshold_k': 0.2,              # avg + (max - avg) * k * (2 - sensitivity)
    'sensitivity_range': (0.5, 2.0),
    'min_separation_div': 40,        # min lane separation = width / div
    'edge_skip_px': 10,              # ignore peaks this close to the image border
    'edge_pad_px': 10,               # extra padding for first/last lane
    'max_margin_pct': 50.0,
}

# Profile smoothing / background
PROFILE_PARAMS = {
    'gaussian_truncate': 3.0,        # kernel radius = truncate * sigma
}

# Peak detection and Gaussian deconvolution
PEAK_PARAMS = {
    'neighbor_span': 2,              # strict maximum over +/- span samples
    'prominence_window': 50,         # samples scanned each side for local minima
    'fit_iterations': 15,
    'learning_rate': 0.5,
    'sigma_floor': 1.5,
    'fwhm_to_sigma': 2.355,
    'model_truncate_sigmas': 4.0,    # Gaussians evaluated within +/- 4 sigma
    'boundary_height_frac': 0.05,    # adaptive boundary threshold = height * frac
    'boundary_sigma_scale': 1.5,
}

# Smear / residual analysis
SMEAR_PARAMS = {
    'mode_bins': 30,                 # lowest histogram bins searched for the noise mode
    'mode_factor': 2.5,
    'min_width_factor': 2,           # run must be wider than factor * min_peak_distance
    'min_mean_ratio': 1.25,          # run mean residual must reach ratio * threshold
}

# Manual override helpers
OVERRIDE_PARAMS = {
    'manual_band_half_width': 10,
}

# Pipeline execution
PIPELINE_PARAMS = {
    'max_workers': 4,                # thread pool size for per-lane analysis
    'parallel_min_lanes': 2,         # run sequentially below this many lanes
}

# Default paths
DEFAULT_PATHS = {
    'output_root': Path('runs/gel_integrity'),
    'report_name': 'lanes.json',
}
