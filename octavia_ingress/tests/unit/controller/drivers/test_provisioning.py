# Licensed under the Apache License, Version 2.0 (the "License"); you may
# not use this file except in compliance with the License. You may obtain
# a copy of the License at
#
#      http://www.apache.org/licenses/LICENSE-2.0
#
# Unless required by applicable law or agreed to in writing, software
# distributed under the License is distributed on an "AS IS" BASIS, WITHOUT
# WARRANTIES OR CONDITIONS OF ANY KIND, either express or implied. See the
# License for the specific language governing permissions and limitations
# under the License.

from unittest import mock

import ddt
from openstack import exceptions as os_exc
from openstack.load_balancer.v2 import load_balancer as o_lb

from octavia_ingress.controller.drivers import provisioning
from octavia_ingress import exceptions as k_exc
from octavia_ingress.tests import base as test_base
from octavia_ingress.tests.unit import ingress_fixtures as k_fix


@ddt.ddt
class TestProvisioningState(test_base.TestCase):

    @ddt.data(('ACTIVE', provisioning.ProvisioningState.ACTIVE),
              ('ERROR', provisioning.ProvisioningState.ERROR),
              ('PENDING_CREATE', provisioning.ProvisioningState.PENDING),
              ('PENDING_UPDATE', provisioning.ProvisioningState.PENDING),
              ('SOMETHING_NEW', provisioning.ProvisioningState.PENDING),
              (None, provisioning.ProvisioningState.PENDING))
    @ddt.unpack
    def test_from_status(self, status, expected):
        self.assertIs(expected,
                      provisioning.ProvisioningState.from_status(status))


@mock.patch('time.sleep')
class TestProvisioningStatusPoller(test_base.TestCase):

    def setUp(self):
        super(TestProvisioningStatusPoller, self).setUp()
        self.lbaas = self.useFixture(k_fix.MockLBaaSClient()).client
        self.poller = provisioning.ProvisioningStatusPoller(interval=2,
                                                            steps=3)

    def _lb(self, status):
        return o_lb.LoadBalancer(id='lb-id', provisioning_status=status)

    def test_defaults(self, m_sleep):
        self.cfg.config(lb_poll_interval=7, lb_poll_steps=11,
                        group='octavia')

        poller = provisioning.ProvisioningStatusPoller()

        self.assertEqual(7, poller._interval)
        self.assertEqual(11, poller._steps)

    def test_wait_for_active(self, m_sleep):
        active = self._lb('ACTIVE')
        self.lbaas.get_load_balancer.side_effect = [
            self._lb('PENDING_UPDATE'), active]

        self.assertIs(active, self.poller.wait_for_active('lb-id'))
        m_sleep.assert_called_once_with(2)

    def test_wait_for_active_immediately(self, m_sleep):
        self.lbaas.get_load_balancer.return_value = self._lb('ACTIVE')

        self.poller.wait_for_active('lb-id')

        m_sleep.assert_not_called()

    def test_wait_for_active_error(self, m_sleep):
        self.lbaas.get_load_balancer.return_value = self._lb('ERROR')

        self.assertRaises(k_exc.LoadBalancerProvisioningError,
                          self.poller.wait_for_active, 'lb-id')

    def test_wait_for_active_timeout(self, m_sleep):
        self.lbaas.get_load_balancer.return_value = self._lb(
            'PENDING_CREATE')

        ex = self.assertRaises(k_exc.LoadBalancerNotReady,
                               self.poller.wait_for_active, 'lb-id')

        self.assertEqual(3, self.lbaas.get_load_balancer.call_count)
        self.assertEqual(2, m_sleep.call_count)
        self.assertIn('PENDING_CREATE', str(ex))

    def test_wait_for_deletion(self, m_sleep):
        self.lbaas.get_load_balancer.side_effect = [
            self._lb('PENDING_DELETE'), os_exc.NotFoundException()]

        self.poller.wait_for_deletion('lb-id')

        self.assertEqual(2, self.lbaas.get_load_balancer.call_count)

    def test_wait_for_deletion_deleted_status(self, m_sleep):
        self.lbaas.get_load_balancer.return_value = self._lb('DELETED')

        self.poller.wait_for_deletion('lb-id')

    def test_wait_for_deletion_error(self, m_sleep):
        self.lbaas.get_load_balancer.return_value = self._lb('ERROR')

        self.assertRaises(k_exc.LoadBalancerProvisioningError,
                          self.poller.wait_for_deletion, 'lb-id')

    def test_wait_for_deletion_timeout(self, m_sleep):
        self.lbaas.get_load_balancer.return_value = self._lb(
            'PENDING_DELETE')

        self.assertRaises(k_exc.LoadBalancerNotReady,
                          self.poller.wait_for_deletion, 'lb-id')
