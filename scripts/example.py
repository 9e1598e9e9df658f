"""
example.py - Simple Example for NCSnet

This is a basic example script demonstrating the workflow for setting up and
running a networked control loop simulation. A discrete double integrator is
sampled by a sensor node, state feedback is computed by a controller node on
the far side of a lossy, delayed network, and the control signal travels back
to the actuator through a second delayed link. An observer node estimates the
state from the same lossy measurement stream.
"""

import matplotlib.pyplot as plt
import numpy as np
import ncsnet as ncs

#------------------------------------------------------------------------------#
#    Plant                                                                     #
#------------------------------------------------------------------------------#

Ts = 0.01                                      # sampling period (s)
plant = ncs.NcsPlant(
    Ad=[[1.0, Ts], [0.0, 1.0]],                # discrete double integrator
    Bd=[[0.5 * Ts**2], [Ts]],
    sampleTime=Ts,
    controlSaturationLimits=[20.0],            # |u| <= 20
)


class Process:
    """Plant state advanced once per sample with the last applied input."""

    def __init__(self, x0):
        self.x = np.asarray(x0, dtype=np.float64)
        self.u = np.zeros(plant.inputSize)
        self.states = []

    def sample(self, t, seq):
        # Advance to the sampling instant, then measure [y, u]
        if (seq > 1):
            self.x = plant.step(self.x, self.u)
        self.states.append(np.concatenate(([t], self.x)))
        return np.concatenate((plant.output(self.x), self.u))

    def actuate(self, t, u):
        self.u = np.asarray(u, dtype=np.float64)


#------------------------------------------------------------------------------#
#    Network Control System                                                    #
#------------------------------------------------------------------------------#

class ExampleLoop(ncs.NcsStructure):
    """
    Sensor -> lossy link -> orderer -> controller -> delayed link -> rejection
    -> actuator, with a detected-loss branch feeding an observer.
    """

    def createNodes(self):
        Ts = self.plant.sampleTime
        n, m = self.plant.stateSize, self.plant.inputSize
        net = self.networkEffectsData

        self.addNode("Sensor", ncs.SensorNode(
            n + m, [2, 8], 1, Ts,                # [y, u] to both branches
            sampleFcn=self.process.sample, endTime=self.simTime))
        self.addNode("SensorLink", ncs.NetworkDelayWithDropouts(
            n + m, 3, 2, net['sensorDelays'], net['sensorLoss'],
            net['maxConsecutiveLoss'], Ts))
        self.addNode("Orderer", ncs.NetworkOrderer(n + m, 4, 3, Ts))
        self.addNode("Controller", ncs.ControllerNode(
            m, 5, 4, 'StateFeedback', self.controlParams, self.plant))
        self.addNode("ActuatorLink", ncs.NetworkDelay(
            m, 6, 5, net['actuatorDelays']))
        self.addNode("Rejection", ncs.MsgRejection(m, 7, 6))
        self.addNode("Actuator", ncs.ActuatorNode(
            m, 7, actuateFcn=self.process.actuate))

        self.addNode("ObserverLink", ncs.NetworkDropoutDetection(
            n + m, 9, 8, net['sensorLoss'], net['maxDelay']))
        self.addNode("Observer", ncs.ObserverNode(
            n, 0, 9, 'SwitchedGain', self.observerParams, self.plant))


#------------------------------------------------------------------------------#
#    Network Effects                                                           #
#------------------------------------------------------------------------------#

simTime = 3.0                                  # simulated time (s)
numSamples = int(round(simTime / Ts)) + 5      # table length with margin
rng = np.random.default_rng(2024)              # reproducible tables

networkEffectsData = {
    'sensorDelays': rng.uniform(1e-3, 4e-3, numSamples),
    'sensorLoss': ncs.generateDataLoss(2, numSamples, rng=rng,
                                       lossProbability=0.2),
    'maxConsecutiveLoss': 2,
    'actuatorDelays': rng.uniform(1e-3, 3e-3, numSamples),
    'maxDelay': 5e-3,                          # worst-case sensor link delay
}

#------------------------------------------------------------------------------#
#    Strategies                                                                #
#------------------------------------------------------------------------------#

controlParams = {'k': [[-10.0, -5.0]]}         # u = K x
observerParams = {
    'l': [0.5 * np.eye(2),                     # gain after valid output
          0.3 * np.eye(2),                     # one output lost
          0.1 * np.eye(2)],                    # two or more lost
}

#------------------------------------------------------------------------------#
#    Run Simulation                                                            #
#------------------------------------------------------------------------------#

loop = ExampleLoop(plant,
                   name='Example',
                   simTime=simTime,
                   networkEffectsData=networkEffectsData,
                   controlParams=controlParams,
                   observerParams=observerParams,
                   logging='onlyfile',
                   netLogging='onlyfile',
                   process=Process([1.0, 0.0]))
results = loop.run()                           # start the simulation

#------------------------------------------------------------------------------#
#    Plot Results                                                              #
#------------------------------------------------------------------------------#

ncs.plotTimeSeries.plotControlHistory(loop.getNode("Controller"), figNo=1)
ncs.plotTimeSeries.plotEstimates(loop.getNode("Observer"), figNo=2,
                                 states=np.array(loop.process.states))
plt.show()
