from accesslift.services.query_conversion import ObjectShape, convert, convert_expression
from accesslift.services.query_conversion.models import ControlBinding, QueryDescriptor, ResolvedParameter
from accesslift.services.query_conversion.pipeline import EMPTY_INPUT_WARNING, QueryConversionPipeline, settings_with


def _query(sql, type_code=0, name='qryTest', **extra):
    return {'queryName': name, 'queryTypeCode': type_code, 'sql': sql, **extra}


class TestStages:

    def test_stage_order(self, settings):
        assert QueryConversionPipeline(settings).stage_names == [
            'prepare', 'functions', 'parameter_binding', 'syntax', 'references', 'syntax_finish',
            'table_qualification', 'function_qualification', 'parameter_types', 'ddl',
        ]

    def test_failing_stage_is_skipped_with_warning(self, settings):
        pipeline = QueryConversionPipeline(settings)

        def _boom(ctx):
            raise RuntimeError('boom')

        pipeline.stages[1].apply = _boom
        result = pipeline.run(QueryDescriptor('qryTest', 0, 'SELECT Id FROM Orders'), 'app')
        assert 'functions stage failed: boom' in result.warnings
        assert result.object_type == ObjectShape.VIEW
        assert result.statements == ['CREATE OR REPLACE VIEW app."qrytest" AS\nSELECT Id FROM app."orders" orders']


class TestSelectQueries:

    def test_top_becomes_limit(self, settings):
        result = convert(_query('SELECT TOP 10 * FROM Orders;', name='qryTop'), 'app', settings=settings)
        assert result.object_name == 'qrytop'
        assert result.object_type == ObjectShape.VIEW
        assert result.statements == ['CREATE OR REPLACE VIEW app."qrytop" AS\nSELECT * FROM app."orders" orders LIMIT 10']
        assert 'TOP' not in result.statements[0]

    def test_functions_literals_and_brackets(self, settings):
        sql = 'SELECT [Order ID], Nz([Qty], 0) AS qty FROM [Order Lines] WHERE [Shipped] = True AND [Note] LIKE "rush*"'
        result = convert(_query(sql), 'app', settings=settings)
        assert result.statements == [
            'CREATE OR REPLACE VIEW app."qrytest" AS\n'
            'SELECT "order_id", COALESCE("qty", 0) AS qty FROM app."order_lines" order_lines '
            'WHERE "shipped" = true AND "note" LIKE \'rush%\''
        ]

    def test_session_variable_view(self, settings):
        result = convert(_query('SELECT Id FROM Recipe WHERE Id = [TempVars]![recipe_id]'), 'app', settings=settings)
        assert result.object_type == ObjectShape.VIEW
        assert result.statements == [
            'CREATE OR REPLACE VIEW app."qrytest" AS\n'
            'SELECT Id FROM app."recipe" recipe CROSS JOIN shared.session_state ss1 '
            "WHERE (Id::text = ss1.value) AND ss1.table_name = '_tempvars' AND ss1.column_name = 'recipe_id'"
        ]

    def test_form_reference_in_join_condition(self, settings):
        bindings = {'f.c': {'table': 't', 'column': 'c'}}
        sql = 'SELECT * FROM a INNER JOIN b ON a.id = b.id AND b.k = Forms!f!c'
        statement = convert(_query(sql), 'app', control_bindings=bindings, settings=settings).statements[0]
        assert statement == (
            'CREATE OR REPLACE VIEW app."qrytest" AS\n'
            'SELECT * FROM shared.session_state ss1 CROSS JOIN app."a" a INNER JOIN app."b" b '
            "ON a.id = b.id AND b.k::text = ss1.value WHERE ss1.table_name = 't' AND ss1.column_name = 'c'"
        )
        assert statement.index('session_state ss1') < statement.index('ss1.value')

    def test_declared_live_reference_is_not_a_parameter(self, settings):
        query = _query('SELECT * FROM Orders WHERE Id = [Forms]![frmA]![txtId]',
                       parameters=[{'name': '[Forms]![frmA]![txtId]', 'type': 'Long'}])
        bindings = {'frma.txtid': {'table': 'orders', 'column': 'id'}}
        result = convert(query, 'app', control_bindings=bindings, settings=settings)
        assert result.object_type == ObjectShape.VIEW
        assert result.parameters == []
        assert result.referenced_state_entries == [ControlBinding('orders', 'id')]

    def test_parameters_clause_gives_table_function(self, settings):
        sql = 'PARAMETERS MinQty Long;\nSELECT Id, Qty FROM Orders WHERE Qty > MinQty;'
        result = convert(_query(sql, name='qryOrders'), 'app', {'id': 'integer', 'qty': 'integer'}, settings=settings)
        assert result.object_type == ObjectShape.PROCEDURE
        assert result.parameters == [ResolvedParameter('MinQty', 'p_minqty', 'bigint')]
        assert result.statements == [
            'CREATE OR REPLACE FUNCTION app."qryorders"(p_minqty bigint)\n'
            'RETURNS TABLE("id" integer, "qty" integer) AS $$\n'
            'SELECT Id, Qty FROM app."orders" orders WHERE Qty > p_minqty\n'
            '$$ LANGUAGE SQL STABLE'
        ]

    def test_parameters_clause_completes_extractor_list(self, settings):
        sql = 'PARAMETERS [Min Qty] Long, [Cust] Text;\nSELECT Id FROM t WHERE Qty > [Min Qty] AND CustId = [Cust]'
        query = _query(sql, name='q', parameters=[{'name': '[Cust]', 'type': 'Text'}])
        result = convert(query, 'app', settings=settings)
        assert [param.target_identifier for param in result.parameters] == ['p_cust', 'p_min_qty']
        statement = result.statements[0]
        assert statement.startswith('CREATE OR REPLACE FUNCTION app."q"(p_cust text, p_min_qty bigint)')
        assert 'WHERE Qty > p_min_qty AND CustId = p_cust' in statement
        assert '"min_qty"' not in statement

    def test_generic_parameter_type_is_refined(self, settings):
        query = _query('SELECT * FROM Orders WHERE Orders.Qty > [Min]', parameters=[{'name': 'Min', 'type': 'Text'}])
        result = convert(query, 'app', {'orders.qty': 'integer'}, settings=settings)
        assert result.parameters[0].target_type == 'integer'

    def test_session_variables_as_parameters(self):
        settings = settings_with(session_vars_as_parameters=True, validate_output=False)
        query = _query('SELECT Id FROM Recipe WHERE Id = [TempVars]![RecipeID]', name='qryRecipe',
                       parameters=[{'name': '[TempVars]![RecipeID]', 'type': 'Long'}])
        result = convert(query, 'app', settings=settings)
        assert result.parameters == [ResolvedParameter('TempVars!recipeid', 'p_recipeid', 'bigint')]
        assert result.statements[0].startswith('CREATE OR REPLACE FUNCTION app."qryrecipe"(p_recipeid bigint)')
        assert 'shared.session_state' not in result.statements[0]


class TestActionQueries:

    def test_update_with_form_reference(self, settings):
        bindings = {'frmorders.txtid': {'table': 'orders', 'column': 'order_id'}}
        sql = "UPDATE Orders SET Orders.Status = 'done' WHERE OrderID = [Forms]![frmOrders]![txtID]"
        result = convert(_query(sql, 48, name='qryClose'), 'app', control_bindings=bindings, settings=settings)
        assert result.object_type == ObjectShape.PROCEDURE
        statement = result.statements[0]
        assert "UPDATE app.\"orders\" orders SET Status = 'done' FROM shared.session_state ss1 " in statement
        assert 'RETURNS integer' in statement
        assert 'GET DIAGNOSTICS _count = ROW_COUNT' in statement
        assert 'LANGUAGE plpgsql' in statement
        assert result.referenced_state_entries == [ControlBinding('orders', 'order_id')]

    def test_delete_star(self, settings):
        result = convert(_query('DELETE Orders.* FROM Orders WHERE Closed = True', 32), 'app', settings=settings)
        assert '  DELETE FROM app."orders" orders WHERE Closed = true;\n' in result.statements[0]

    def test_make_table(self, settings):
        result = convert(_query('SELECT * INTO Archive FROM Orders', 80, name='mkArchive'), 'app', settings=settings)
        assert result.object_type == ObjectShape.PROCEDURE
        assert 'DROP TABLE IF EXISTS app."archive"' in result.statements[0]
        assert 'CREATE TABLE app."archive" AS\n  SELECT * FROM app."orders" orders;' in result.statements[0]


class TestNoOutput:

    def test_empty_text(self, settings):
        result = convert(_query('   '), 'app', settings=settings)
        assert result.object_type == ObjectShape.NONE
        assert result.statements == []
        assert result.warnings == [EMPTY_INPUT_WARNING]

    def test_declaration_only(self, settings):
        result = convert(_query('PARAMETERS x Long;'), 'app', settings=settings)
        assert result.warnings == [EMPTY_INPUT_WARNING]

    def test_unknown_type_code(self, settings):
        result = convert(_query('SELECT 1', 999), 'app', settings=settings)
        assert result.object_type == ObjectShape.NONE
        assert any(warning.startswith('Unsupported query type') for warning in result.warnings)

    def test_crosstab(self, settings):
        sql = 'TRANSFORM Sum(Qty) SELECT Product FROM Sales GROUP BY Product PIVOT Region'
        result = convert(_query(sql, 16), 'app', settings=settings)
        assert result.object_type == ObjectShape.NONE
        assert result.statements == []
        assert any(warning.startswith('Crosstab queries are unsupported') for warning in result.warnings)

    def test_invalid_record(self, settings):
        result = convert(['not', 'a', 'record'], 'app', settings=settings)
        assert result.object_type == ObjectShape.NONE
        assert result.warnings[0].startswith('Invalid query record')


class TestWarnings:

    def test_extractor_note(self, settings):
        result = convert(_query('SELECT 1 AS one', paramWarning='could not read parameters'), 'app', settings=settings)
        assert 'Extractor note on parameters: could not read parameters' in result.warnings

    def test_unresolved_reference(self, settings):
        result = convert(_query('SELECT * FROM Lines WHERE OrderID = Parent!OrderID'), 'app', settings=settings)
        assert result.object_type == ObjectShape.VIEW
        assert 'NULL /* UNRESOLVED: Parent!orderid */' in result.statements[0]
        assert 'Unresolved form reference Parent!orderid; substituted NULL' in result.warnings

    def test_valid_output_passes_validation(self, validating_settings):
        result = convert(_query('SELECT TOP 10 * FROM Orders'), 'app', settings=validating_settings)
        assert not any('did not parse cleanly' in warning for warning in result.warnings)

    def test_broken_output_is_reported(self, validating_settings):
        result = convert(_query('SELECT * FROM Orders WHERE (Qty = 1'), 'app', settings=validating_settings)
        assert result.object_type == ObjectShape.VIEW
        assert any(warning.startswith('Generated SQL did not parse cleanly as postgresql')
                   for warning in result.warnings)


class TestConvertExpression:

    def test_calculated_control(self, settings):
        assert convert_expression('IIf(IsNull([Qty]), 0, [Qty]) & " units"', settings) == \
            'CASE WHEN ("qty" IS NULL) THEN 0 ELSE "qty" END || \' units\''

    def test_current_date(self, settings):
        assert convert_expression('Date()', settings) == 'CURRENT_DATE'
