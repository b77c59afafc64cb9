# Configuration of the stream photometry pipelines.
# Values here are the defaults used by main.py, main2.py and main3.py.

### Survey ###

survey = 'DES'
zeropoint = 22.5

# Bands processed, in the order they appear in the reports
bands = ['r', 'g', 'z']

# HDU of the input images
image_hdu = 0

### Detection parameters ###

blocksize = 8
interpngb = 10
nc_tilesize = 40
nc_kernel_fwhm = 3
nc_holesize = 10000
nc_kernel_trunc = 4
seg_kernel_fwhm = 3
qthreshold = 0.3
gthreshold = 0.5
segbordersn = 1

### Photometry ###

# Convert the ds9 circle regions to XYR files before measuring
aperture_conversion = True

# Number of random positions for the upper limit measurements
upnum = 10000
polygon_upnum = 20

# Radius of the 100 arcsec^2 aperture used for the upper limit SB
ulsb_radius_arcsec = 5.64

# Minimum SNR kept on the diffuse stream after the ellipse growth
snr_cutoff = 1.5

# SNR threshold defining the host galaxy for the automatic ellipse
snr_galaxy_threshold = 10

# Write one line per run in Results/<survey>-results.txt
global_results = False
results_dir = 'Results'

### Ellipse growth ###

ellipse_growth = {'factor': 2.0,
                  'step': 0.2,
                  'sb_start': 21.0,
                  'tolerance': 0.1,
                  'sb_floor': 25.0,
                  'floor_tolerance': 0.1,
                  'max_iterations': 100}

# The empty sky pipeline uses a finer search
empty_sky_growth = {'factor': 2.0,
                    'step': 0.25,
                    'sb_start': 21.0,
                    'tolerance': 0.01,
                    'sb_floor': 25.0,
                    'floor_tolerance': 0.0,
                    'max_iterations': 100}

# Bands measured at every growth iteration
growth_bands = ['r', 'g']

### Images ###

convert_params = ['--colormap=gray', '--fluxlow=-0.005', '--fluxhigh=0.02', '--invert']
warp_convert_params = ['--colormap=gray', '--fluxlow=-0.04', '--fluxhigh=0.25', '--invert']

# Pixel value used to draw the host contour
contour_value = 1000

### Mock images ###

pixel_width_arcsec = 0.262
sblimit_nsigma = 3
sblimit_area_arcsec2 = 100
mock_center_ra = 180
mock_center_dec = 0
subhalo_array = list(range(3, 16))
subhalo_image = 'AURIGA_halo_{}_DES_DECam_SDSSr_70Mpc_rspmode-none_rspfac-1_los010.fits.gz'

### Gnuastro ###

# Fixed seed for every random number generator used by Gnuastro
gsl_rng_seed = '1599251212'
