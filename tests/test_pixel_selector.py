import numpy as np
import pytest

from dsoutil.pixel_selector import PixelStatus, grid_max_selection, make_pixel_status

W, H = 12, 10


def _random_grads(seed=0, w=W, h=H):
    rng = np.random.default_rng(seed)
    return rng.normal(scale=30.0, size=(h, w, 3)).astype(np.float32)


def test_zero_gradients_select_nothing():
    status = grid_max_selection(np.zeros((H, W, 3)), W, H, 2)
    assert status.num_good == 0
    assert not status.mask.any()


def test_single_strong_pixel_is_selected():
    grads = np.zeros((H, W, 3), dtype=np.float32)
    grads[4, 6] = (0.0, 50.0, 10.0)
    status = grid_max_selection(grads, W, H, 3)
    assert status.num_good == 1
    assert status.mask[4, 6]
    assert status.mask.sum() == 1


def test_threshold_depends_on_factor():
    grads = np.zeros((H, W, 3), dtype=np.float32)
    grads[3, 3] = (0.0, 7.0, 0.0)
    assert grid_max_selection(grads, W, H, 2, 1.0).num_good == 0
    assert grid_max_selection(grads, W, H, 2, 0.5).mask[3, 3]


def test_ties_go_to_first_column():
    grads = np.zeros((H, W, 3), dtype=np.float32)
    grads[2, 1] = (0.0, 20.0, 0.0)  # dx = 0, dy = 1
    grads[1, 2] = (0.0, 20.0, 0.0)  # dx = 1, dy = 0
    status = grid_max_selection(grads, W, H, 2)
    assert status.num_good == 1
    assert status.mask[2, 1]
    assert not status.mask[1, 2]


def test_flat_gradient_layout_is_accepted():
    grads = _random_grads(3)
    a = grid_max_selection(grads, W, H, 2)
    b = grid_max_selection(grads.reshape(W * H, 3), W, H, 2)
    assert np.array_equal(a.mask, b.mask)
    assert a.num_good == b.num_good


@pytest.mark.parametrize("pot", [1, 2, 3, 4])
def test_mask_count_matches_and_blocks_hold_at_most_four(pot):
    grads = _random_grads(pot)
    status = grid_max_selection(grads, W, H, pot)
    assert status.mask.sum() == status.num_good
    assert not status.mask[0, :].any()
    assert not status.mask[:, 0].any()
    ny = len(range(1, H - pot, pot))
    nx = len(range(1, W - pot, pot))
    region = status.mask[1:1 + ny * pot, 1:1 + nx * pot]
    per_block = region.reshape(ny, pot, nx, pot).sum(axis=(1, 3))
    assert per_block.max() <= 4
    assert status.mask.sum() == region.sum()


def test_wrong_gradient_shape_raises():
    with pytest.raises(ValueError):
        grid_max_selection(np.zeros((H, W, 2)), W, H, 2)


def test_invalid_block_size_raises():
    with pytest.raises(ValueError):
        grid_max_selection(np.zeros((H, W, 3)), W, H, 0)


def test_matching_density_keeps_sparsity():
    grads = _random_grads(7, 40, 30)
    reference = grid_max_selection(grads, 40, 30, 3)
    status = make_pixel_status(grads, 40, 30, reference.num_good, sparsity_factor=3)
    assert isinstance(status, PixelStatus)
    assert status.sparsity_factor == 3
    assert status.num_good == reference.num_good
    assert np.array_equal(status.mask, reference.mask)


def test_no_recursions_left_returns_first_selection():
    grads = _random_grads(11, 40, 30)
    reference = grid_max_selection(grads, 40, 30, 4)
    status = make_pixel_status(grads, 40, 30, 1.0, sparsity_factor=4, recs_left=0)
    assert np.array_equal(status.mask, reference.mask)
    assert status.sparsity_factor >= 4


def test_sparsity_below_one_is_clamped():
    grads = _random_grads(5)
    reference = grid_max_selection(grads, W, H, 1)
    status = make_pixel_status(grads, W, H, 1000.0, sparsity_factor=0, recs_left=0)
    assert np.array_equal(status.mask, reference.mask)
    assert status.sparsity_factor >= 1


def test_adaptation_result_is_consistent():
    grads = _random_grads(13, 60, 40)
    status = make_pixel_status(grads, 60, 40, 200.0)
    assert status.sparsity_factor >= 1
    assert status.mask.sum() == status.num_good


def test_nonpositive_density_raises():
    with pytest.raises(ValueError):
        make_pixel_status(np.zeros((H, W, 3)), W, H, 0.0)