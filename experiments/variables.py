#!/usr/bin/env python3
# -*- coding: utf-8 -*-
"""
default parameters and empirical procedure tables for the salpingectomy simulation
"""
import numpy as np

#simulation parameters
sim_mode = 'opportunistic' #'opportunistic' or 'non_opportunistic'
strategy = 'everyone' #see functions.STRATEGIES for the names valid in each mode
population_size = 500 #cohort is truncated to this many individuals
seed = 1234 #global seed, combined with each individual's id
n_workers = 3 #number of worker processes (1 = run inline)
chunk_size = 1000 #individuals per unit of work sent to a worker

relative_risk_OvC = 0.35 #weight of an accepted salpingectomy being effective against OvC death

#opportunistic percent strategy
pre50_acceptance = 1.0 #probability of accepting salpingectomy < age 50
post50_acceptance = 1.0 #probability of accepting salpingectomy >= age 50

#non-opportunistic percent strategy
nonop_acceptance_rate = 0.1 #probability after 50 of accepting a non-op salpingectomy when offered

#opportunistic mode only: women still without salpingectomy after the surgery window
#also get the non-opportunistic offer after 50, at nonop_acceptance_rate
post50_offer = False

#what happens when a woman draws a surgery type she already had
#'skip': ignore this draw and move on to the next month
#'stop': end the opportunistic window for her
repeat_surgery_policy = 'skip'

#time axis, in months of age
n_months = 90*12
window_start = 1 #first month of the opportunistic window
window_end = n_months #last month of the opportunistic window
nonop_first_month = 481 #earliest candidate month for a non-opportunistic salpingectomy

#input / output locations
cohort_path = './inputs/simulation_results_detailed.csv'
output_dir = './outputs/'

#procedures tracked by the hazard table, in column order
v_procedure = ['Any procedure', 'Abdominal hernia repair', 'Appendectomy', 'Cholecystectomy',
               'Colectomy', 'Gastric bypass', 'Hysterectomy', 'Bilateral tubal ligation']

#lower bound (years) of each age band of the incidence / population tables
age_bands = np.array([0, 8, 16, 21, 26, 31, 36, 41, 46, 51, 56, 61, 66, 71, 76])

#events in a year per age band
procedure_counts = {
    'Any procedure':            [0, 4626, 5154, 7665, 7435, 5763, 5246, 4442, 4157, 3240, 7771, 6307, 4391, 2688, 1911],
    'Abdominal hernia repair':  [0, 0, 18, 54, 101, 168, 216, 235, 273, 224, 577, 467, 313, 148, 84],
    'Appendectomy':             [0, 829, 438, 535, 571, 521, 533, 535, 548, 347, 746, 518, 295, 164, 89],
    'Cholecystectomy':          [0, 1295, 1271, 1723, 1747, 1859, 2029, 2059, 2146, 1616, 3950, 3096, 2030, 1197, 825],
    'Colectomy':                [0, 87, 66, 74, 101, 147, 217, 333, 440, 493, 1313, 1400, 1305, 1011, 840],
    'Gastric bypass':           [0, 19, 35, 100, 119, 127, 164, 185, 161, 116, 176, 39, 0, 0, 0],
    'Hysterectomy':             [0, 0, 11, 64, 227, 619, 809, 428, 142, 93, 206, 187, 83, 40, 14],
    'Bilateral tubal ligation': [0, 1132, 1919, 3158, 2398, 726, 144, 18, 0, 0, 0, 0, 0, 0, 0],
}

#female population per age band (first band is a placeholder, no procedures occur there)
population_counts = [1, 479472, 303952, 359533, 373973, 359174, 385985, 398822, 439411, 330916,
                     874465, 753484, 530157, 347809, 377749]
