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

from octavia_ingress.controller.drivers import security_group
from octavia_ingress import exceptions as k_exc
from octavia_ingress.tests import base as test_base
from octavia_ingress.tests import fake
from octavia_ingress.tests.unit import ingress_fixtures as k_fix

TAGS = ['octavia.ingress.kubernetes.io', 'shop_web']
CIDR = '10.0.0.0/24'


class TestSecurityGroupManager(test_base.TestCase):

    def setUp(self):
        super(TestSecurityGroupManager, self).setUp()
        self.cloud = self.useFixture(k_fix.FakeCloud())
        self.network = self.cloud.network
        self.manager = security_group.SecurityGroupManager()
        self.nodes = [fake.get_node('node-1', instance_id='vm-1'),
                      fake.get_node('node-2', instance_id='vm-2')]
        self.ports = [self.network.add_port('vm-1', ['default']),
                      self.network.add_port('vm-2', ['default'])]

    def _ports_of_rules(self, sg_id):
        return sorted(rule.port_range_min
                      for rule in self.network.rules.values()
                      if rule.security_group_id == sg_id)

    def test_ensure_creates(self):
        sg_id = self.manager.ensure('sg', 'description', TAGS)

        sg = self.network.security_groups_by_id[sg_id]
        self.assertEqual('sg', sg.name)
        self.assertEqual(TAGS, sg.tags)
        self.assertEqual(sg_id, self.manager.find(TAGS).id)

    def test_ensure_existing(self):
        first = self.manager.ensure('sg', 'description', TAGS)

        second = self.manager.ensure('sg', 'description', TAGS)

        self.assertEqual(first, second)
        self.assertEqual(1, len(self.network.security_groups_by_id))

    def test_ensure_tagging_fails(self):
        with mock.patch.object(fake.FakeSecurityGroup, 'add_tag',
                               side_effect=RuntimeError()):
            self.assertRaises(RuntimeError, self.manager.ensure, 'sg',
                              'description', TAGS)

        self.assertEqual({}, self.network.security_groups_by_id)

    def test_find_duplicates(self):
        for _ in range(2):
            sg = self.network.create_security_group(name='sg')
            sg.tags.extend(TAGS)

        self.assertRaises(k_exc.MultipleResourcesFound, self.manager.find,
                          TAGS)

    def test_ensure_rules(self):
        sg_id = self.manager.ensure('sg', 'description', TAGS)

        self.manager.ensure_rules(sg_id, CIDR, [30080, 30081])

        self.assertEqual([30080, 30081], self._ports_of_rules(sg_id))
        rule = list(self.network.rules.values())[0]
        self.assertEqual('ingress', rule.direction)
        self.assertEqual('tcp', rule.protocol)
        self.assertEqual(CIDR, rule.remote_ip_prefix)
        self.assertEqual(rule.port_range_min, rule.port_range_max)

    def test_ensure_rules_converges(self):
        sg_id = self.manager.ensure('sg', 'description', TAGS)
        self.manager.ensure_rules(sg_id, CIDR, [22, 9999])
        kept = [rule.id for rule in self.network.rules.values()
                if rule.port_range_min == 9999]

        self.manager.ensure_rules(sg_id, CIDR, [9999, 80, 443])

        self.assertEqual([80, 443, 9999], self._ports_of_rules(sg_id))
        self.assertIn(kept[0], self.network.rules)

    def test_ensure_port_membership(self):
        sg_id = self.manager.ensure('sg', 'description', TAGS)

        self.manager.ensure_port_membership(sg_id, self.nodes)
        self.manager.ensure_port_membership(sg_id, self.nodes)

        for port in self.ports:
            self.assertEqual(['default', sg_id], port.security_group_ids)

    def test_ensure_port_membership_detach(self):
        sg_id = self.manager.ensure('sg', 'description', TAGS)
        self.manager.ensure_port_membership(sg_id, self.nodes)

        self.manager.ensure_port_membership(sg_id, self.nodes[:1],
                                            attach=False)

        self.assertEqual(['default'], self.ports[0].security_group_ids)
        self.assertEqual(['default', sg_id], self.ports[1].security_group_ids)

    def test_ensure_port_membership_bad_provider_id(self):
        node = fake.get_node('node-3')
        node['spec']['providerID'] = 'aws:///i-0123'

        self.assertRaises(k_exc.ResourceNotReady,
                          self.manager.ensure_port_membership, 'sg-id',
                          [node])

    def test_delete(self):
        sg_id = self.manager.ensure('sg', 'description', TAGS)
        self.manager.ensure_rules(sg_id, CIDR, [30080])
        self.manager.ensure_port_membership(sg_id, self.nodes)

        self.manager.delete(TAGS, self.nodes)

        self.assertEqual({}, self.network.security_groups_by_id)
        self.assertEqual({}, self.network.rules)
        for port in self.ports:
            self.assertEqual(['default'], port.security_group_ids)

    def test_delete_missing(self):
        self.manager.delete(TAGS, self.nodes)
