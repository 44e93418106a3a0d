from django.test import SimpleTestCase

from services.dispatch.discovery import Candidate
from services.dispatch.exceptions import InvalidRequestError, NoProvidersAvailableError
from services.dispatch.ranking import FALLBACK_NOTE, rank_candidates
from services.dispatch.scoring import distance_km, mix_score, proximity_score


def candidate(provider_id, rating=4.0, dist=1.0, price=100.0):
	return Candidate(
		provider_id=provider_id,
		service_id=provider_id,
		name='p%s' % provider_id,
		rating=rating,
		distance_km=dist,
		price=price,
	)


class ScoringTests(SimpleTestCase):
	def test_distance_is_zero_for_same_point(self):
		self.assertEqual(distance_km(77.2090, 28.6139, 77.2090, 28.6139), 0)

	def test_distance_is_symmetric(self):
		there = distance_km(77.2090, 28.6139, 72.8777, 19.0760)
		back = distance_km(72.8777, 19.0760, 77.2090, 28.6139)
		self.assertAlmostEqual(there, back, places=9)

	def test_one_degree_of_latitude(self):
		self.assertAlmostEqual(distance_km(0, 0, 0, 1), 111.195, places=2)

	def test_proximity_decays_to_zero_at_fifteen_km(self):
		self.assertEqual(proximity_score(0), 5)
		self.assertAlmostEqual(proximity_score(6), 3)
		self.assertEqual(proximity_score(15), 0)
		self.assertEqual(proximity_score(40), 0)

	def test_mix_score_blends_rating_and_proximity(self):
		self.assertAlmostEqual(mix_score(5, 0), 5.0)
		self.assertAlmostEqual(mix_score(4, 3), 4 * 0.6 + 4 * 0.4)


class RankingTests(SimpleTestCase):
	def test_rating_mode_falls_back_to_nearest(self):
		result = rank_candidates([candidate(2, rating=2.5, dist=2), candidate(1, rating=2, dist=1)], 'rating')

		self.assertEqual([c.distance_km for c in result.candidates], [1, 2])
		self.assertTrue(result.is_fallback)
		self.assertEqual(result.fallback_note, FALLBACK_NOTE)

	def test_rating_mode_relaxes_to_three_stars(self):
		result = rank_candidates(
			[candidate(1, rating=3.2, dist=4), candidate(2, rating=3.5, dist=9), candidate(3, rating=2.9, dist=1)],
			'rating'
		)

		self.assertEqual(result.provider_ids, [2, 1])
		self.assertFalse(result.is_fallback)

	def test_rating_mode_breaks_ties_by_distance(self):
		result = rank_candidates(
			[candidate(1, rating=4.5, dist=5), candidate(2, rating=4.5, dist=2), candidate(3, rating=4.9, dist=9)],
			'rating'
		)

		self.assertEqual(result.provider_ids, [3, 2, 1])

	def test_nearby_uses_first_non_empty_band(self):
		pool = [candidate(1, dist=0.5), candidate(2, dist=6), candidate(3, dist=11), candidate(4, dist=14)]
		result = rank_candidates(pool, 'nearby')

		self.assertEqual([c.distance_km for c in result.candidates], [0.5, 6])
		self.assertFalse(result.is_fallback)

	def test_nearby_prefers_one_to_five_km_band(self):
		pool = [candidate(1, dist=0.5), candidate(2, dist=3), candidate(3, dist=4.5, rating=5)]
		result = rank_candidates(pool, 'nearby')

		self.assertEqual(result.provider_ids, [2, 3])

	def test_nearby_falls_back_beyond_fifteen_km(self):
		result = rank_candidates([candidate(1, dist=30), candidate(2, dist=20)], 'nearby')

		self.assertEqual(result.provider_ids, [2, 1])
		self.assertEqual(result.fallback_note, FALLBACK_NOTE)

	def test_cheapest_tie_breaks_on_rating_then_distance(self):
		pool = [
			candidate(1, price=200, rating=5, dist=1),
			candidate(2, price=100, rating=4, dist=1),
			candidate(3, price=100, rating=4.5, dist=9),
			candidate(4, price=100, rating=4.5, dist=3),
		]
		result = rank_candidates(pool, 'cheapest')

		self.assertEqual(result.provider_ids, [4, 3, 2, 1])

	def test_mix_orders_by_blended_score(self):
		# 4.0*0.6 + 5*0.4 = 4.4 beats 5.0*0.6 + 0 = 3.0
		result = rank_candidates([candidate(1, rating=5, dist=20), candidate(2, rating=4, dist=0)], 'mix')

		self.assertEqual(result.provider_ids, [2, 1])

	def test_identical_candidates_order_by_provider_id_string(self):
		result = rank_candidates([candidate(10), candidate(9), candidate(2)], 'cheapest')

		self.assertEqual(result.provider_ids, [10, 2, 9])

	def test_ranking_is_deterministic(self):
		pool = [candidate(i, rating=3 + (i % 3) * 0.5, dist=i % 4 + 1, price=50 * (i % 2 + 1)) for i in range(1, 12)]
		for mode in ('nearby', 'rating', 'cheapest', 'mix'):
			first = rank_candidates(pool, mode).provider_ids
			second = rank_candidates(list(reversed(pool)), mode).provider_ids
			self.assertEqual(first, second, mode)

	def test_empty_pool_raises(self):
		with self.assertRaises(NoProvidersAvailableError):
			rank_candidates([], 'rating')

	def test_unknown_mode_raises(self):
		with self.assertRaises(InvalidRequestError):
			rank_candidates([candidate(1)], 'fastest')
